"""Member registry routes."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Annotated

from fastapi import APIRouter, Depends, Form, Query, Request, status
from fastapi.responses import FileResponse, JSONResponse
from sqlmodel import Session
from starlette.datastructures import UploadFile

from member_registry.core.config import Settings, get_settings
from member_registry.db.session import get_session
from member_registry.models.admin_user import AdminUser
from member_registry.schemas.member import MemberStatusInput
from member_registry.services import member_query_service, member_service
from member_registry.services.auth_service import require_admin
from member_registry.services.file_storage import MemberStorage, build_member_storage

router = APIRouter(prefix="/members")

_PHOTO_FIELD = "photo"


def get_member_storage(settings: Annotated[Settings, Depends(get_settings)]) -> MemberStorage:
    return build_member_storage(settings)


@router.post("")
async def enroll_member(
    request: Request,
    session: Annotated[Session, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    storage: Annotated[MemberStorage, Depends(get_member_storage)],
    full_name: Annotated[str | None, Form(alias="fullName")] = None,
    email: Annotated[str | None, Form()] = None,
    phone: Annotated[str | None, Form()] = None,
    birth_date: Annotated[str | None, Form(alias="birthDate")] = None,
    birth_place: Annotated[str | None, Form(alias="birthPlace")] = None,
    activity: Annotated[str | None, Form()] = None,
    id_number: Annotated[str | None, Form(alias="idNumber")] = None,
):
    photo_file = _extract_member_photo_file(await request.form())
    staged_photo = None
    if photo_file is not None:
        staged_photo = storage.photos.save(
            photo_file.filename,
            photo_file.content_type,
            await photo_file.read(),
        )

    member = member_service.enroll_member(
        session,
        storage,
        fields={
            "full_name": full_name,
            "email": email,
            "phone": phone,
            "birth_date": birth_date,
            "birth_place": birth_place,
            "activity": activity,
            "id_number": id_number,
        },
        photo=staged_photo,
        base_url=settings.base_url,
    )
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={
            "success": True,
            "message": "Member created successfully",
            "member": _dump(member_query_service.to_member_read(member)),
        },
    )


@router.get("")
def list_members(
    _admin: Annotated[AdminUser, Depends(require_admin)],
    session: Annotated[Session, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    search: str | None = None,
    sort_column: Annotated[str | None, Query(alias="sortColumn")] = None,
    sort_dir: Annotated[str | None, Query(alias="sortDir")] = None,
    page_offset: Annotated[int | None, Query(alias="pageOffset")] = None,
    page_size: Annotated[int | None, Query(alias="pageSize")] = None,
    draw: int | None = None,
):
    offset, size = member_query_service.clamp_paging(
        page_offset,
        page_size,
        default_size=settings.default_page_size,
        max_size=settings.max_page_size,
    )
    page = member_query_service.list_members(
        session,
        member_query_service.MemberListQuery(
            search=search,
            sort_column=sort_column,
            sort_dir=sort_dir,
            page_offset=offset,
            page_size=size,
        ),
        draw=draw,
    )
    return JSONResponse(content=_dump(page))


@router.get("/{id}")
def get_member(
    id: str,
    _admin: Annotated[AdminUser, Depends(require_admin)],
    session: Annotated[Session, Depends(get_session)],
):
    member = member_service.get_member(session, id)
    return JSONResponse(
        content={"success": True, "member": _dump(member_query_service.to_member_detail(member))}
    )


@router.delete("/{id}")
def delete_member(
    id: str,
    _admin: Annotated[AdminUser, Depends(require_admin)],
    session: Annotated[Session, Depends(get_session)],
    storage: Annotated[MemberStorage, Depends(get_member_storage)],
):
    member_service.remove_member(session, storage, id)
    return JSONResponse(content={"success": True, "message": "Member deleted successfully"})


@router.get("/{id}/photo")
def download_member_photo(
    id: str,
    _admin: Annotated[AdminUser, Depends(require_admin)],
    session: Annotated[Session, Depends(get_session)],
    storage: Annotated[MemberStorage, Depends(get_member_storage)],
):
    download = member_service.fetch_member_photo(session, storage, id)
    return FileResponse(download.path, filename=download.filename)


@router.patch("/{id}/status")
async def update_member_status(
    id: str,
    request: Request,
    _admin: Annotated[AdminUser, Depends(require_admin)],
    session: Annotated[Session, Depends(get_session)],
):
    status_value = _parse_status_value(await request.body())
    member = member_service.set_member_status(session, id, status_value)
    return JSONResponse(
        content={
            "success": True,
            "message": f"Member {member.status} successfully",
            "member": _dump(member_query_service.to_member_read(member)),
        }
    )


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


def _parse_status_value(raw_body: bytes) -> object:
    """Return the submitted ``status``; malformed bodies count as a missing status."""

    try:
        payload = json.loads(raw_body) if raw_body else None
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    return MemberStatusInput.model_validate(payload).status


def _extract_member_photo_file(form_data: Mapping[str, object]) -> UploadFile | None:
    uploaded_file = form_data.get(_PHOTO_FIELD)
    if not isinstance(uploaded_file, UploadFile):
        return None
    if uploaded_file.filename is None or not uploaded_file.filename.strip():
        return None
    return uploaded_file
