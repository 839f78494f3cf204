"""Member lifecycle services: enrollment, moderation, removal and photo download."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from member_registry.core.constants import MemberStatus, utcnow
from member_registry.core.errors import (
    DuplicateError,
    InternalError,
    InvalidStatusError,
    NotFoundError,
    ValidationError,
)
from member_registry.models.member import Member
from member_registry.repositories import member_repo
from member_registry.schemas.member import REQUIRED_ENROLL_FIELDS, MemberEnrollInput
from member_registry.services.file_storage import ContentDirectory, MemberStorage, StoredPhoto
from member_registry.services.identity_code import generate_identity_code

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Full name, email and phone are required"
INVALID_DETAILS_MESSAGE = "Invalid member details"
DUPLICATE_EMAIL_MESSAGE = "A member with this email already exists"
MEMBER_NOT_FOUND_MESSAGE = "Member not found"
INVALID_STATUS_MESSAGE = "Invalid status. Must be 'pending', 'approved', or 'rejected'"
CREATE_FAILED_MESSAGE = "Failed to create member"


@dataclass(frozen=True)
class PhotoDownload:
    """Resolved photo file plus the name offered to the browser."""

    path: Path
    filename: str


def parse_member_enroll_input(fields: Mapping[str, str | None]) -> MemberEnrollInput:
    """Return validated enrollment input or raise ``ValidationError``."""

    try:
        return MemberEnrollInput.model_validate(dict(fields))
    except PydanticValidationError as exc:
        failed_fields = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
        if failed_fields & set(REQUIRED_ENROLL_FIELDS):
            raise ValidationError(REQUIRED_FIELDS_MESSAGE) from exc
        raise ValidationError(INVALID_DETAILS_MESSAGE) from exc


def make_member_code() -> str:
    """Return the display code: ``MEM`` plus the last six digits of epoch millis."""

    return f"MEM{int(time.time() * 1000) % 1_000_000:06d}"


def enroll_member(
    session: Session,
    storage: MemberStorage,
    *,
    fields: Mapping[str, str | None],
    photo: StoredPhoto | None,
    base_url: str,
) -> Member:
    """Create a pending member, cleaning up the staged photo on every failure path."""

    try:
        input_data = parse_member_enroll_input(fields)
        if member_repo.get_member_by_email(session, input_data.email) is not None:
            raise DuplicateError(DUPLICATE_EMAIL_MESSAGE)
    except (ValidationError, DuplicateError) as exc:
        logger.info("Enrollment rejected: %s", exc.message)
        _discard_staged_photo(storage, photo)
        raise
    except Exception as exc:
        _discard_staged_photo(storage, photo)
        logger.exception("Duplicate check failed during enrollment")
        raise InternalError(CREATE_FAILED_MESSAGE) from exc

    member = Member(
        member_id=make_member_code(),
        full_name=input_data.full_name,
        email=input_data.email,
        phone=input_data.phone,
        birth_date=input_data.birth_date,
        birth_place=input_data.birth_place,
        activity=input_data.activity,
        id_number=input_data.id_number,
        status=MemberStatus.PENDING,
        photo=photo.web_path if photo is not None else None,
    )

    member_key = member.id
    code_ref: str | None = None
    try:
        code_ref = generate_identity_code(member_key, base_url=base_url, directory=storage.codes)
        member.qr_code = code_ref
        member_repo.create_member(session, member)
    except IntegrityError as exc:
        session.rollback()
        _discard_unpersisted_files(storage, photo, code_ref)
        if member_repo.get_member_by_email(session, input_data.email) is not None:
            logger.info("Enrollment lost email race for %s", input_data.email)
            raise DuplicateError(DUPLICATE_EMAIL_MESSAGE) from exc
        logger.exception("Unexpected integrity failure while creating member")
        raise InternalError(CREATE_FAILED_MESSAGE) from exc
    except Exception as exc:
        session.rollback()
        _discard_unpersisted_files(storage, photo, code_ref)
        logger.exception("Failed to create member")
        raise InternalError(CREATE_FAILED_MESSAGE) from exc

    # Committed from here on: the record owns its photo and QR files.
    try:
        created_member = member_repo.reload_member(session, member)
    except Exception as exc:
        logger.exception("Member %s was stored but could not be reloaded", member_key)
        raise InternalError(CREATE_FAILED_MESSAGE) from exc

    logger.info("Member %s enrolled as %s", created_member.id, created_member.member_id)
    return created_member


def get_member(session: Session, member_id: str) -> Member:
    member = member_repo.get_member_by_id(session, member_id)
    if member is None:
        raise NotFoundError(MEMBER_NOT_FOUND_MESSAGE)
    return member


def set_member_status(session: Session, member_id: str, status_value: object) -> Member:
    """Move a member to any supported status.

    Every status is reachable from every other one. ``approved_at`` tracks the
    latest approval and is cleared when the member leaves the approved state.
    """

    if not isinstance(status_value, str):
        raise InvalidStatusError(INVALID_STATUS_MESSAGE)
    try:
        new_status = MemberStatus(status_value)
    except ValueError as exc:
        raise InvalidStatusError(INVALID_STATUS_MESSAGE) from exc

    member = get_member(session, member_id)
    member.status = new_status
    member.approved_at = utcnow() if new_status == MemberStatus.APPROVED else None
    updated_member = member_repo.update_member(session, member)
    logger.info("Member %s status set to %s", member_id, new_status)
    return updated_member


def remove_member(session: Session, storage: MemberStorage, member_id: str) -> None:
    """Delete the record, then best-effort remove its photo and QR image."""

    member = get_member(session, member_id)
    photo_ref, code_ref = member.photo, member.qr_code
    if not member_repo.delete_member(session, member_id):
        logger.info("Member %s was deleted by a concurrent request", member_id)
        raise NotFoundError(MEMBER_NOT_FOUND_MESSAGE)
    logger.info("Member %s deleted", member_id)

    _remove_dependent_file(storage.photos.directory, photo_ref, member_id=member_id)
    _remove_dependent_file(storage.codes, code_ref, member_id=member_id)


def fetch_member_photo(session: Session, storage: MemberStorage, member_id: str) -> PhotoDownload:
    member = member_repo.get_member_by_id(session, member_id)
    if member is None or not member.photo:
        raise NotFoundError("Member or photo not found")

    photo_path = storage.photos.resolve(member.photo)
    if photo_path is None or not photo_path.is_file():
        raise NotFoundError("Photo file not found")

    return PhotoDownload(
        path=photo_path,
        filename=build_photo_download_name(member.full_name, photo_path),
    )


def build_photo_download_name(full_name: str, photo_path: Path) -> str:
    """Return ``full_name`` with non-alphanumerics as ``_``, lower-cased, plus the extension."""

    safe_name = re.sub(r"[^a-z0-9]", "_", full_name, flags=re.IGNORECASE).lower()
    return f"{safe_name}{photo_path.suffix.lower()}"


def _discard_staged_photo(storage: MemberStorage, photo: StoredPhoto | None) -> None:
    if photo is None:
        return
    try:
        storage.photos.remove(photo.web_path)
    except OSError:
        logger.warning("Could not delete staged photo %s", photo.path, exc_info=True)
    else:
        logger.info("Deleted staged photo %s", photo.path)


def _discard_unpersisted_files(
    storage: MemberStorage,
    photo: StoredPhoto | None,
    code_ref: str | None,
) -> None:
    _discard_staged_photo(storage, photo)
    if code_ref is None:
        return
    try:
        storage.codes.remove(code_ref)
    except OSError:
        logger.warning("Could not delete orphaned QR code %s", code_ref, exc_info=True)


def _remove_dependent_file(
    directory: ContentDirectory,
    web_path: str | None,
    *,
    member_id: str,
) -> None:
    if not web_path:
        return
    try:
        removed = directory.remove(web_path)
    except OSError:
        logger.warning(
            "Failed to remove %s for deleted member %s", web_path, member_id, exc_info=True
        )
        return
    if not removed:
        logger.info("File %s for deleted member %s was already absent", web_path, member_id)
