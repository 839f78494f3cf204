"""Database access helpers for members."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import delete, func, or_
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, col, select

from member_registry.models.member import Member

SEARCHABLE_COLUMNS = (Member.full_name, Member.email, Member.phone, Member.id_number)


def build_search_filter(search: str | None) -> ColumnElement[bool] | None:
    """Return an OR of case-insensitive substring matches, or ``None`` for no filter."""

    if search is None or not search.strip():
        return None
    pattern = f"%{_escape_like(search.strip().lower())}%"
    return or_(
        *(func.lower(col(column)).like(pattern, escape="\\") for column in SEARCHABLE_COLUMNS)
    )


def list_members_page(
    session: Session,
    *,
    search_filter: ColumnElement[bool] | None,
    order_by: Sequence[Any],
    offset: int,
    limit: int,
) -> Sequence[Member]:
    """Return one ordered slice of the (optionally filtered) member set."""

    statement = select(Member)
    if search_filter is not None:
        statement = statement.where(search_filter)
    return session.exec(statement.order_by(*order_by).offset(offset).limit(limit)).all()


def count_members(session: Session, search_filter: ColumnElement[bool] | None = None) -> int:
    """Return the number of members matching the filter."""

    statement = select(func.count()).select_from(Member)
    if search_filter is not None:
        statement = statement.where(search_filter)
    return session.exec(statement).one()


def get_member_by_id(session: Session, member_id: str) -> Member | None:
    """Return member by primary key."""

    return session.get(Member, member_id)


def get_member_by_email(session: Session, email: str) -> Member | None:
    """Return member by unique email."""

    return session.exec(select(Member).where(col(Member.email) == email)).first()


def create_member(session: Session, member: Member) -> None:
    """Insert and commit a new member. Email collisions surface as ``IntegrityError``."""

    session.add(member)
    session.commit()


def reload_member(session: Session, member: Member) -> Member:
    """Refresh a committed member from the database."""

    session.refresh(member)
    return member


def update_member(session: Session, member: Member) -> Member:
    """Persist an updated member."""

    session.add(member)
    session.commit()
    session.refresh(member)
    return member


def delete_member(session: Session, member_id: str) -> bool:
    """Hard-delete a member by id. Returns ``False`` when no row matched."""

    result = session.exec(delete(Member).where(col(Member.id) == member_id))
    session.commit()
    return result.rowcount > 0


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
