"""Member model."""

from __future__ import annotations

from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, String
from sqlalchemy import Enum as SAEnum
from sqlmodel import Field, SQLModel

from member_registry.core.constants import MemberStatus, enum_values, utcnow


def new_member_id() -> str:
    """Return a fresh opaque member identifier."""

    return uuid4().hex


class Member(SQLModel, table=True):
    """Registered member table."""

    __tablename__ = "member"

    id: str = Field(default_factory=new_member_id, primary_key=True, max_length=32)
    member_id: str = Field(sa_column=Column(String(20), nullable=False))
    full_name: str = Field(sa_column=Column(String(200), nullable=False))
    email: str = Field(sa_column=Column(String(255), unique=True, nullable=False))
    phone: str = Field(sa_column=Column(String(50), nullable=False))
    birth_date: date | None = Field(default=None, sa_column=Column(Date, nullable=True))
    birth_place: str | None = Field(default=None, sa_column=Column(String(200), nullable=True))
    activity: str | None = Field(default=None, sa_column=Column(String(500), nullable=True))
    id_number: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    status: MemberStatus = Field(
        default=MemberStatus.PENDING,
        sa_column=Column(
            SAEnum(
                MemberStatus,
                name="member_status",
                native_enum=False,
                values_callable=enum_values,
            ),
            nullable=False,
            default=MemberStatus.PENDING,
        ),
    )
    photo: str | None = Field(default=None, sa_column=Column(String(500), nullable=True))
    qr_code: str | None = Field(default=None, sa_column=Column(String(500), nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, onupdate=utcnow),
    )
    approved_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
