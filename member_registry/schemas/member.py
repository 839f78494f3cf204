"""Member request and response schemas."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from member_registry.core.constants import MemberStatus

REQUIRED_ENROLL_FIELDS = ("full_name", "email", "phone")


class MemberEnrollInput(BaseModel):
    """Validated public enrollment form."""

    full_name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=255)
    phone: str = Field(min_length=1, max_length=50)
    birth_date: date | None = None
    birth_place: str | None = Field(default=None, max_length=200)
    activity: str | None = Field(default=None, max_length=500)
    id_number: str | None = Field(default=None, max_length=100)

    @field_validator("full_name", "phone", mode="before")
    @classmethod
    def _strip_required(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("birth_date", "birth_place", "activity", "id_number", mode="before")
    @classmethod
    def _normalize_optional_text(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        return normalized or None


class MemberStatusInput(BaseModel):
    """Status change payload; the value is checked by the lifecycle service."""

    status: object | None = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MemberRead(_CamelModel):
    """Full member record as stored."""

    id: str
    member_id: str
    full_name: str
    email: str
    phone: str
    birth_date: date | None
    birth_place: str | None
    activity: str | None
    id_number: str | None
    status: MemberStatus
    photo: str | None
    qr_code: str | None
    created_at: datetime
    updated_at: datetime
    approved_at: datetime | None


class MemberListItem(MemberRead):
    """Listing row where absent text fields read ``"N/A"``."""

    birth_place: str
    activity: str
    id_number: str


class MemberGridRow(_CamelModel):
    """Row consumed by the admin grid widget."""

    id: str
    full_name: str
    email: str
    phone: str
    id_number: str
    activity: str
    status: MemberStatus
    created_at: datetime


class MemberDetail(_CamelModel):
    """Single member view with display defaults applied."""

    id: str
    full_name: str
    email: str
    phone: str
    photo: str
    qr_code: str | None
    status: MemberStatus
    member_id: str
    birth_date: date | None
    birth_place: str
    activity: str
    id_number: str
    approved_at: datetime | None
    created_at: datetime
    updated_at: datetime


class MemberGridPage(BaseModel):
    """Grid widget listing contract."""

    draw: int
    records_total: int = Field(serialization_alias="recordsTotal")
    records_filtered: int = Field(serialization_alias="recordsFiltered")
    data: list[MemberGridRow]


class MemberPlainPage(BaseModel):
    """Plain API listing contract."""

    success: bool = True
    count: int
    members: list[MemberListItem]
