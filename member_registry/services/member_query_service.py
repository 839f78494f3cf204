"""Member listing: search, sorting, offset paging and response shaping."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, col

from member_registry.core.constants import DEFAULT_AVATAR_PATH, NOT_AVAILABLE
from member_registry.models.member import Member
from member_registry.repositories import member_repo
from member_registry.schemas.member import (
    MemberDetail,
    MemberGridPage,
    MemberGridRow,
    MemberListItem,
    MemberPlainPage,
    MemberRead,
)

DEFAULT_SORT_COLUMN = "createdAt"

SORTABLE_COLUMNS: dict[str, Any] = {
    "memberId": Member.member_id,
    "fullName": Member.full_name,
    "email": Member.email,
    "phone": Member.phone,
    "birthDate": Member.birth_date,
    "birthPlace": Member.birth_place,
    "activity": Member.activity,
    "idNumber": Member.id_number,
    "status": Member.status,
    "createdAt": Member.created_at,
    "updatedAt": Member.updated_at,
    "approvedAt": Member.approved_at,
}

_ASCENDING_VALUES = {"asc", "ascending"}


@dataclass(frozen=True)
class MemberListQuery:
    """Listing request independent of the response shape."""

    search: str | None = None
    sort_column: str | None = None
    sort_dir: str | None = None
    page_offset: int = 0
    page_size: int = 10


def build_order_by(sort_column: str | None, sort_dir: str | None) -> list[Any]:
    """Unknown columns fall back to ``createdAt``; anything but ascending sorts descending."""

    column = SORTABLE_COLUMNS.get(sort_column or DEFAULT_SORT_COLUMN, Member.created_at)
    ascending = sort_dir is not None and sort_dir.strip().lower() in _ASCENDING_VALUES
    primary = col(column).asc() if ascending else col(column).desc()
    return [primary, col(Member.id).asc()]


def clamp_paging(
    page_offset: int | None,
    page_size: int | None,
    *,
    default_size: int,
    max_size: int,
) -> tuple[int, int]:
    offset = max(page_offset or 0, 0)
    size = default_size if page_size is None or page_size <= 0 else min(page_size, max_size)
    return offset, size


def _query_page(
    session: Session,
    query: MemberListQuery,
) -> tuple[ColumnElement[bool] | None, Sequence[Member]]:
    search_filter = member_repo.build_search_filter(query.search)
    members = member_repo.list_members_page(
        session,
        search_filter=search_filter,
        order_by=build_order_by(query.sort_column, query.sort_dir),
        offset=query.page_offset,
        limit=query.page_size,
    )
    return search_filter, members


def list_members(
    session: Session,
    query: MemberListQuery,
    *,
    draw: int | None = None,
) -> MemberGridPage | MemberPlainPage:
    """Run one listing query and shape it for the grid widget (``draw`` given) or plain clients."""

    search_filter, members = _query_page(session, query)
    if draw is None:
        return MemberPlainPage(count=len(members), members=[to_list_item(m) for m in members])

    return MemberGridPage(
        draw=draw,
        records_total=member_repo.count_members(session),
        records_filtered=member_repo.count_members(session, search_filter),
        data=[to_grid_row(m) for m in members],
    )


def to_member_read(member: Member) -> MemberRead:
    return MemberRead.model_validate(member)


def to_list_item(member: Member) -> MemberListItem:
    data = to_member_read(member).model_dump()
    for field_name in ("birth_place", "activity", "id_number"):
        data[field_name] = _or_not_available(data[field_name])
    return MemberListItem.model_validate(data)


def to_grid_row(member: Member) -> MemberGridRow:
    return MemberGridRow(
        id=member.id,
        full_name=_or_not_available(member.full_name),
        email=_or_not_available(member.email),
        phone=_or_not_available(member.phone),
        id_number=_or_not_available(member.id_number),
        activity=_or_not_available(member.activity),
        status=member.status,
        created_at=member.created_at,
    )


def to_member_detail(member: Member) -> MemberDetail:
    return MemberDetail(
        id=member.id,
        full_name=_or_not_available(member.full_name),
        email=_or_not_available(member.email),
        phone=_or_not_available(member.phone),
        photo=member.photo or DEFAULT_AVATAR_PATH,
        qr_code=member.qr_code,
        status=member.status,
        member_id=_or_not_available(member.member_id),
        birth_date=member.birth_date,
        birth_place=_or_not_available(member.birth_place),
        activity=_or_not_available(member.activity),
        id_number=_or_not_available(member.id_number),
        approved_at=member.approved_at,
        created_at=member.created_at,
        updated_at=member.updated_at,
    )


def _or_not_available(value: str | None) -> str:
    return value if value else NOT_AVAILABLE
