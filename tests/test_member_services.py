"""Service-level tests for enrollment, listing, moderation and removal."""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from member_registry.core.config import Settings
from member_registry.core.constants import NOT_AVAILABLE, MemberStatus
from member_registry.core.errors import (
    DuplicateError,
    InternalError,
    InvalidStatusError,
    NotFoundError,
    ValidationError,
)
from member_registry.models.member import Member
from member_registry.repositories import member_repo
from member_registry.schemas.member import MemberGridPage, MemberPlainPage
from member_registry.services import identity_code, member_query_service, member_service
from member_registry.services.file_storage import (
    ContentDirectory,
    PhotoStore,
    build_member_storage,
    ensure_storage_dirs,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
BASE_URL = "https://registry.example.org"


def _dt(hours: int) -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC) + timedelta(hours=hours)


@pytest.fixture
def session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as db_session:
        yield db_session


@pytest.fixture
def storage(tmp_path):
    member_storage = build_member_storage(Settings(storage_root=tmp_path / "public"))
    ensure_storage_dirs(member_storage)
    return member_storage


def _fields(**overrides: str | None) -> dict[str, str | None]:
    fields: dict[str, str | None] = {
        "full_name": "Jane Doe",
        "email": "jane@x.com",
        "phone": "555-0100",
        "birth_date": None,
        "birth_place": None,
        "activity": None,
        "id_number": None,
    }
    fields.update(overrides)
    return fields


def _seed(session: Session, *members: Member) -> list[Member]:
    for member in members:
        session.add(member)
    session.commit()
    for member in members:
        session.refresh(member)
    return list(members)


def _member(index: int, **overrides) -> Member:
    values = {
        "member_id": f"MEM00000{index}",
        "full_name": f"Member {index}",
        "email": f"member{index}@example.com",
        "phone": f"555-010{index}",
        "created_at": _dt(index),
        "updated_at": _dt(index),
    }
    values.update(overrides)
    return Member(**values)


def test_enroll_creates_pending_member_with_identity_code(session, storage):
    member = member_service.enroll_member(
        session,
        storage,
        fields=_fields(),
        photo=None,
        base_url=BASE_URL,
    )

    assert member.status == MemberStatus.PENDING
    assert re.fullmatch(r"MEM\d{6}", member.member_id)
    assert member.photo is None
    assert member.qr_code == f"/qrcodes/{member.id}.png"
    assert (storage.codes.root / f"{member.id}.png").is_file()
    assert member.email == "jane@x.com"


def test_enroll_keeps_staged_photo_reference(session, storage):
    staged = storage.photos.save("portrait.PNG", "image/png", PNG_BYTES)

    member = member_service.enroll_member(
        session,
        storage,
        fields=_fields(birth_date="1990-04-02", activity="Chess"),
        photo=staged,
        base_url=BASE_URL,
    )

    assert member.photo == staged.web_path
    assert staged.web_path.startswith("/uploads/member-")
    assert staged.web_path.endswith(".png")
    assert staged.path.is_file()
    assert member.birth_date is not None
    assert member.birth_date.isoformat() == "1990-04-02"


@pytest.mark.parametrize("missing_field", ["full_name", "email", "phone"])
def test_enroll_missing_required_field_removes_staged_photo(session, storage, missing_field):
    staged = storage.photos.save("portrait.jpg", "image/jpeg", PNG_BYTES)

    with pytest.raises(ValidationError) as exc_info:
        member_service.enroll_member(
            session,
            storage,
            fields=_fields(**{missing_field: "   "}),
            photo=staged,
            base_url=BASE_URL,
        )

    assert exc_info.value.message == member_service.REQUIRED_FIELDS_MESSAGE
    assert not staged.path.exists()
    assert session.exec(select(Member)).all() == []


def test_enroll_rejects_malformed_birth_date(session, storage):
    with pytest.raises(ValidationError) as exc_info:
        member_service.enroll_member(
            session,
            storage,
            fields=_fields(birth_date="not-a-date"),
            photo=None,
            base_url=BASE_URL,
        )

    assert exc_info.value.message == member_service.INVALID_DETAILS_MESSAGE


def test_enroll_duplicate_email_removes_staged_photo(session, storage):
    member_service.enroll_member(session, storage, fields=_fields(), photo=None, base_url=BASE_URL)
    staged = storage.photos.save("portrait.gif", "image/gif", PNG_BYTES)

    with pytest.raises(DuplicateError) as exc_info:
        member_service.enroll_member(
            session,
            storage,
            fields=_fields(full_name="Other Jane", email=" JANE@x.com "),
            photo=staged,
            base_url=BASE_URL,
        )

    assert exc_info.value.message == "A member with this email already exists"
    assert not staged.path.exists()
    assert len(session.exec(select(Member)).all()) == 1


def test_enroll_storage_level_duplicate_maps_to_duplicate_error(session, storage, monkeypatch):
    existing = member_service.enroll_member(
        session, storage, fields=_fields(), photo=None, base_url=BASE_URL
    )
    existing_code = storage.codes.root / f"{existing.id}.png"

    real_lookup = member_repo.get_member_by_email
    lookups: list[str] = []

    def stale_then_real_lookup(db_session: Session, email: str):
        lookups.append(email)
        if len(lookups) == 1:
            return None
        return real_lookup(db_session, email)

    monkeypatch.setattr(member_repo, "get_member_by_email", stale_then_real_lookup)
    staged = storage.photos.save("portrait.png", "image/png", PNG_BYTES)

    with pytest.raises(DuplicateError):
        member_service.enroll_member(
            session, storage, fields=_fields(), photo=staged, base_url=BASE_URL
        )

    assert not staged.path.exists()
    assert sorted(path.name for path in storage.codes.root.iterdir()) == [existing_code.name]
    assert len(session.exec(select(Member)).all()) == 1


def test_enroll_succeeds_when_code_generation_fails(session, storage, monkeypatch):
    def broken_renderer(payload: str, target_path: Path) -> None:
        raise RuntimeError("encoder unavailable")

    monkeypatch.setattr(identity_code, "_render_code_image", broken_renderer)

    member = member_service.enroll_member(
        session, storage, fields=_fields(), photo=None, base_url=BASE_URL
    )

    assert member.qr_code is None
    assert session.get(Member, member.id) is not None
    assert list(storage.codes.root.iterdir()) == []


@pytest.mark.parametrize(
    "failure",
    [SQLAlchemyError("database is locked"), OSError("disk full")],
    ids=["database", "filesystem"],
)
def test_enroll_store_failure_discards_photo_and_code(session, storage, monkeypatch, failure):
    def failing_create(db_session: Session, member: Member) -> None:
        raise failure

    monkeypatch.setattr(member_repo, "create_member", failing_create)
    staged = storage.photos.save("portrait.png", "image/png", PNG_BYTES)

    with pytest.raises(InternalError) as exc_info:
        member_service.enroll_member(
            session, storage, fields=_fields(), photo=staged, base_url=BASE_URL
        )

    assert exc_info.value.message == "Failed to create member"
    assert exc_info.value.__cause__ is failure
    assert not staged.path.exists()
    assert list(storage.codes.root.iterdir()) == []
    assert session.exec(select(Member)).all() == []


def test_enroll_keeps_files_when_reload_fails_after_commit(session, storage, monkeypatch):
    def failing_reload(db_session: Session, member: Member) -> Member:
        raise SQLAlchemyError("connection dropped")

    monkeypatch.setattr(member_repo, "reload_member", failing_reload)
    staged = storage.photos.save("portrait.png", "image/png", PNG_BYTES)

    with pytest.raises(InternalError):
        member_service.enroll_member(
            session, storage, fields=_fields(), photo=staged, base_url=BASE_URL
        )

    stored = session.exec(select(Member)).one()
    assert stored.photo == staged.web_path
    assert staged.path.is_file()
    assert stored.qr_code == f"/qrcodes/{stored.id}.png"
    assert (storage.codes.root / f"{stored.id}.png").is_file()


def test_generate_identity_code_encodes_verification_url(tmp_path, monkeypatch):
    directory = ContentDirectory(tmp_path, "/qrcodes")
    payloads: list[str] = []

    def recording_renderer(payload: str, target_path: Path) -> None:
        payloads.append(payload)
        target_path.write_bytes(b"png")

    monkeypatch.setattr(identity_code, "_render_code_image", recording_renderer)

    code_ref = identity_code.generate_identity_code(
        "abc123", base_url="https://registry.example.org/", directory=directory
    )

    assert code_ref == "/qrcodes/abc123.png"
    assert payloads == ["https://registry.example.org/verify/abc123"]


def test_generate_identity_code_removes_partially_written_image(tmp_path, monkeypatch):
    directory = ContentDirectory(tmp_path, "/qrcodes")

    def truncated_renderer(payload: str, target_path: Path) -> None:
        target_path.write_bytes(b"\x89PNG")
        raise OSError("No space left on device")

    monkeypatch.setattr(identity_code, "_render_code_image", truncated_renderer)

    code_ref = identity_code.generate_identity_code(
        "abc123", base_url=BASE_URL, directory=directory
    )

    assert code_ref is None
    assert list(tmp_path.iterdir()) == []


def test_list_members_defaults_to_newest_first(session):
    _seed(session, _member(1), _member(2), _member(3))

    page = member_query_service.list_members(session, member_query_service.MemberListQuery())

    assert isinstance(page, MemberPlainPage)
    assert page.count == 3
    assert [item.full_name for item in page.members] == ["Member 3", "Member 2", "Member 1"]


def test_list_members_search_matches_any_field_case_insensitively(session):
    _seed(
        session,
        _member(1, full_name="Alice Martin"),
        _member(2, email="ALICE.w@example.com"),
        _member(3, id_number="ID-alice-7"),
        _member(4, full_name="Bob Stone"),
        _member(5, phone="555-ALICE"),
    )

    page = member_query_service.list_members(
        session, member_query_service.MemberListQuery(search="alice")
    )

    assert isinstance(page, MemberPlainPage)
    assert sorted(item.member_id for item in page.members) == [
        "MEM000001",
        "MEM000002",
        "MEM000003",
        "MEM000005",
    ]


def test_list_members_search_treats_wildcards_literally(session):
    _seed(session, _member(1, full_name="100% Member"), _member(2, full_name="Plain"))

    page = member_query_service.list_members(
        session, member_query_service.MemberListQuery(search="%")
    )

    assert isinstance(page, MemberPlainPage)
    assert [item.full_name for item in page.members] == ["100% Member"]


def test_list_members_pages_without_overlap_or_gaps(session):
    _seed(session, _member(1), _member(2), _member(3), _member(4))

    first = member_query_service.list_members(
        session, member_query_service.MemberListQuery(page_offset=0, page_size=2)
    )
    second = member_query_service.list_members(
        session, member_query_service.MemberListQuery(page_offset=2, page_size=2)
    )

    assert isinstance(first, MemberPlainPage)
    assert isinstance(second, MemberPlainPage)
    assert [item.full_name for item in first.members] == ["Member 4", "Member 3"]
    assert [item.full_name for item in second.members] == ["Member 2", "Member 1"]
    assert first.count == 2
    assert second.count == 2


def test_list_members_sorts_by_requested_column(session):
    _seed(
        session,
        _member(1, full_name="Charlie"),
        _member(2, full_name="alpha"),
        _member(3, full_name="Bravo"),
    )

    ascending = member_query_service.list_members(
        session,
        member_query_service.MemberListQuery(sort_column="memberId", sort_dir="asc"),
    )
    fallback = member_query_service.list_members(
        session,
        member_query_service.MemberListQuery(sort_column="password", sort_dir="sideways"),
    )

    assert isinstance(ascending, MemberPlainPage)
    assert isinstance(fallback, MemberPlainPage)
    assert [item.full_name for item in ascending.members] == ["Charlie", "alpha", "Bravo"]
    assert [item.full_name for item in fallback.members] == ["Bravo", "alpha", "Charlie"]


def test_grid_listing_reports_total_and_filtered_counts(session):
    _seed(
        session,
        _member(1, full_name="Alice One"),
        _member(2, full_name="Alice Two"),
        _member(3, full_name="Alice Three"),
        _member(4, full_name="Bob"),
    )

    page = member_query_service.list_members(
        session,
        member_query_service.MemberListQuery(search="alice", page_offset=0, page_size=2),
        draw=7,
    )

    assert isinstance(page, MemberGridPage)
    assert page.draw == 7
    assert page.records_total == 4
    assert page.records_filtered == 3
    assert len(page.data) == 2
    assert page.data[0].id_number == NOT_AVAILABLE
    assert page.data[0].activity == NOT_AVAILABLE

    dumped = page.model_dump(mode="json", by_alias=True)
    assert dumped["recordsTotal"] == 4
    assert dumped["recordsFiltered"] == 3
    assert set(dumped["data"][0]) == {
        "id",
        "fullName",
        "email",
        "phone",
        "idNumber",
        "activity",
        "status",
        "createdAt",
    }


def test_plain_listing_substitutes_missing_text(session):
    _seed(session, _member(1, activity="Rowing"))

    page = member_query_service.list_members(session, member_query_service.MemberListQuery())

    assert isinstance(page, MemberPlainPage)
    item = page.members[0]
    assert item.activity == "Rowing"
    assert item.birth_place == NOT_AVAILABLE
    assert item.id_number == NOT_AVAILABLE
    assert item.photo is None


def test_clamp_paging_applies_defaults_and_limits():
    assert member_query_service.clamp_paging(None, None, default_size=10, max_size=100) == (0, 10)
    assert member_query_service.clamp_paging(-5, 0, default_size=10, max_size=100) == (0, 10)
    assert member_query_service.clamp_paging(20, 500, default_size=10, max_size=100) == (20, 100)


def test_set_member_status_transitions(session):
    (member,) = _seed(session, _member(1))

    approved = member_service.set_member_status(session, member.id, "approved")
    assert approved.status == MemberStatus.APPROVED
    assert approved.approved_at is not None

    rejected = member_service.set_member_status(session, member.id, "rejected")
    assert rejected.status == MemberStatus.REJECTED
    assert rejected.approved_at is None

    pending = member_service.set_member_status(session, member.id, "pending")
    assert pending.status == MemberStatus.PENDING


@pytest.mark.parametrize(
    "bad_status",
    ["archived", "", None, "APPROVED", 5, ["approved"], {"status": "approved"}],
)
def test_set_member_status_rejects_unknown_values(session, bad_status):
    (member,) = _seed(session, _member(1))

    with pytest.raises(InvalidStatusError):
        member_service.set_member_status(session, member.id, bad_status)

    session.refresh(member)
    assert member.status == MemberStatus.PENDING


def test_set_member_status_unknown_member(session):
    with pytest.raises(NotFoundError):
        member_service.set_member_status(session, "missing", "approved")


def test_remove_member_deletes_record_and_files(session, storage):
    staged = storage.photos.save("portrait.png", "image/png", PNG_BYTES)
    member = member_service.enroll_member(
        session, storage, fields=_fields(), photo=staged, base_url=BASE_URL
    )
    code_path = storage.codes.root / f"{member.id}.png"
    assert code_path.is_file()

    member_service.remove_member(session, storage, member.id)

    assert session.get(Member, member.id) is None
    assert not staged.path.exists()
    assert not code_path.exists()


def test_remove_member_tolerates_missing_photo_file(session, storage):
    staged = storage.photos.save("portrait.png", "image/png", PNG_BYTES)
    member = member_service.enroll_member(
        session, storage, fields=_fields(), photo=staged, base_url=BASE_URL
    )
    staged.path.unlink()

    member_service.remove_member(session, storage, member.id)

    assert session.get(Member, member.id) is None
    assert not (storage.codes.root / f"{member.id}.png").exists()


def test_remove_member_reports_success_when_file_removal_fails(session, storage, monkeypatch):
    staged = storage.photos.save("portrait.png", "image/png", PNG_BYTES)
    member = member_service.enroll_member(
        session, storage, fields=_fields(), photo=staged, base_url=BASE_URL
    )

    def failing_remove(self: ContentDirectory, web_path: str | None) -> bool:
        raise PermissionError("read-only volume")

    monkeypatch.setattr(ContentDirectory, "remove", failing_remove)

    member_service.remove_member(session, storage, member.id)

    assert session.get(Member, member.id) is None


def test_remove_unknown_member_touches_no_files(session, storage, monkeypatch):
    removed: list[str | None] = []

    def recording_remove(self: ContentDirectory, web_path: str | None) -> bool:
        removed.append(web_path)
        return True

    monkeypatch.setattr(ContentDirectory, "remove", recording_remove)

    with pytest.raises(NotFoundError):
        member_service.remove_member(session, storage, "missing")

    assert removed == []


def test_remove_member_loses_to_concurrent_delete(tmp_path, storage, monkeypatch):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'registry.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    staged = storage.photos.save("portrait.png", "image/png", PNG_BYTES)
    removed: list[str | None] = []

    def recording_remove(self: ContentDirectory, web_path: str | None) -> bool:
        removed.append(web_path)
        return True

    with Session(engine) as first_session, Session(engine) as second_session:
        member = member_service.enroll_member(
            first_session, storage, fields=_fields(), photo=staged, base_url=BASE_URL
        )
        member_id = member.id
        stale_copy = member_service.get_member(second_session, member_id)
        assert stale_copy.photo == staged.web_path

        member_service.remove_member(first_session, storage, member_id)
        assert not staged.path.exists()

        monkeypatch.setattr(ContentDirectory, "remove", recording_remove)
        with pytest.raises(NotFoundError):
            member_service.remove_member(second_session, storage, member_id)

    assert removed == []
    engine.dispose()


def test_delete_member_reports_whether_a_row_matched(session):
    (member,) = _seed(session, _member(1))

    assert member_repo.delete_member(session, member.id) is True
    assert member_repo.delete_member(session, member.id) is False
    assert session.get(Member, member.id) is None


def test_fetch_member_photo_derives_download_name(session, storage):
    staged = storage.photos.save("Portrait.JPEG", "image/jpeg", PNG_BYTES)
    member = member_service.enroll_member(
        session,
        storage,
        fields=_fields(full_name="Jane O'Doe-Smith"),
        photo=staged,
        base_url=BASE_URL,
    )

    download = member_service.fetch_member_photo(session, storage, member.id)

    assert download.path == staged.path
    assert download.filename == "jane_o_doe_smith.jpeg"


def test_fetch_member_photo_not_found_cases(session, storage):
    (without_photo,) = _seed(session, _member(1))
    (dangling,) = _seed(session, _member(2, photo="/uploads/member-gone.png"))

    with pytest.raises(NotFoundError):
        member_service.fetch_member_photo(session, storage, "missing")
    with pytest.raises(NotFoundError):
        member_service.fetch_member_photo(session, storage, without_photo.id)
    with pytest.raises(NotFoundError):
        member_service.fetch_member_photo(session, storage, dangling.id)


def test_photo_store_rejects_unsupported_uploads_before_writing(tmp_path):
    directory = ContentDirectory(tmp_path, "/uploads")
    photo_store = PhotoStore(directory, max_bytes=16)

    with pytest.raises(ValidationError):
        photo_store.save("resume.pdf", "application/pdf", b"%PDF")
    with pytest.raises(ValidationError):
        photo_store.save("fake.png", "text/plain", b"data")
    with pytest.raises(ValidationError):
        photo_store.save("empty.png", "image/png", b"")
    with pytest.raises(ValidationError):
        photo_store.save("huge.png", "image/png", b"x" * 17)

    assert list(tmp_path.iterdir()) == []


def test_content_directory_resolve_rejects_foreign_paths(tmp_path):
    directory = ContentDirectory(tmp_path, "/uploads")

    assert directory.resolve("/uploads/member-1.png") == tmp_path / "member-1.png"
    assert directory.resolve("/uploads/../secret.txt") is None
    assert directory.resolve("/qrcodes/abc.png") is None
    assert directory.resolve(None) is None
    assert directory.remove("/uploads/never-written.png") is False


def test_ensure_storage_dirs_is_idempotent(tmp_path):
    member_storage = build_member_storage(Settings(storage_root=tmp_path / "content"))

    ensure_storage_dirs(member_storage)
    ensure_storage_dirs(member_storage)

    assert (tmp_path / "content" / "uploads").is_dir()
    assert (tmp_path / "content" / "qrcodes").is_dir()


def test_make_member_code_format():
    assert re.fullmatch(r"MEM\d{6}", member_service.make_member_code())
