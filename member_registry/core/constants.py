"""Application-wide constants and shared values."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum, StrEnum

NOT_AVAILABLE = "N/A"
DEFAULT_AVATAR_PATH = "/images/default-avatar.png"

UPLOADS_WEB_PATH = "/uploads"
QRCODES_WEB_PATH = "/qrcodes"


class MemberStatus(StrEnum):
    """Supported member moderation status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def enum_values(enum_cls: type[Enum]) -> list[str]:
    """Return enum values for SQLAlchemy enum configuration."""

    return [str(item.value) for item in enum_cls]


def utcnow() -> datetime:
    """Return timezone-aware current UTC datetime."""

    return datetime.now(UTC)
