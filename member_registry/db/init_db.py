"""Database and storage initialization performed once before serving requests."""

from __future__ import annotations

from sqlmodel import Session, SQLModel, select

from member_registry.core.config import get_settings
from member_registry.db.session import engine
from member_registry.models import AdminUser
from member_registry.services.auth_service import hash_password
from member_registry.services.file_storage import build_member_storage, ensure_storage_dirs


def create_db_and_tables() -> None:
    """Create all tables from SQLModel metadata."""

    SQLModel.metadata.create_all(engine)


def create_initial_admin() -> None:
    """Seed the configured moderator account when not present."""

    settings = get_settings()

    with Session(engine) as session:
        existing_user = session.exec(
            select(AdminUser).where(AdminUser.username == settings.admin_username)
        ).first()
        if existing_user is not None:
            return

        session.add(
            AdminUser(
                username=settings.admin_username,
                password_hash=hash_password(settings.admin_password),
            )
        )
        session.commit()


def init_db() -> None:
    """Initialize tables, content directories and seed admin data."""

    create_db_and_tables()
    ensure_storage_dirs(build_member_storage(get_settings()))
    create_initial_admin()


if __name__ == "__main__":
    init_db()
