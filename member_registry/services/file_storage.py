"""Content directories for uploaded photos and generated identity codes."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from member_registry.core.config import Settings
from member_registry.core.constants import QRCODES_WEB_PATH, UPLOADS_WEB_PATH
from member_registry.core.errors import ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_PHOTO_EXTENSIONS = {".gif", ".jpeg", ".jpg", ".png"}
_ALLOWED_PHOTO_CONTENT_TYPES = {"image/gif", "image/jpeg", "image/jpg", "image/png"}


@dataclass(frozen=True)
class ContentDirectory:
    """A directory on disk exposed under a root-relative web prefix."""

    root: Path
    web_prefix: str

    def ensure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def web_path(self, file_name: str) -> str:
        return f"{self.web_prefix}/{file_name}"

    def resolve(self, web_path: str | None) -> Path | None:
        """Map a stored reference back to its file, or ``None`` if it is not ours."""

        if not web_path:
            return None
        prefix = f"{self.web_prefix}/"
        if not web_path.startswith(prefix):
            return None
        file_name = web_path.removeprefix(prefix)
        if not file_name or Path(file_name).name != file_name or file_name in {".", ".."}:
            return None
        return self.root / file_name

    def remove(self, web_path: str | None) -> bool:
        """Delete the referenced file. Returns ``False`` when it was already gone."""

        target_path = self.resolve(web_path)
        if target_path is None:
            return False
        try:
            target_path.unlink()
        except FileNotFoundError:
            return False
        return True


@dataclass(frozen=True)
class StoredPhoto:
    """A photo written to the upload directory."""

    path: Path
    web_path: str


class PhotoStore:
    """Persists uploaded member photos under unique names."""

    def __init__(self, directory: ContentDirectory, *, max_bytes: int) -> None:
        self.directory = directory
        self.max_bytes = max_bytes

    def save(self, filename: str | None, content_type: str | None, content: bytes) -> StoredPhoto:
        """Validate and write an upload, raising ``ValidationError`` before any write."""

        if filename is None or not filename.strip():
            raise ValidationError("Photo file name is missing")

        extension = Path(filename).suffix.lower()
        normalized_type = (content_type or "").split(";", 1)[0].strip().lower()
        if (
            extension not in _ALLOWED_PHOTO_EXTENSIONS
            or normalized_type not in _ALLOWED_PHOTO_CONTENT_TYPES
        ):
            raise ValidationError("Images only (JPEG, JPG, PNG, GIF)")
        if len(content) == 0:
            raise ValidationError("Photo file is empty")
        if len(content) > self.max_bytes:
            limit_mb = self.max_bytes // (1024 * 1024)
            raise ValidationError(f"Photo must not exceed {limit_mb}MB")

        file_name = _make_unique_photo_filename(extension)
        target_path = self.directory.root / file_name
        target_path.write_bytes(content)
        logger.info("Stored member photo %s (%d bytes)", file_name, len(content))
        return StoredPhoto(path=target_path, web_path=self.directory.web_path(file_name))

    def resolve(self, web_path: str | None) -> Path | None:
        return self.directory.resolve(web_path)

    def remove(self, web_path: str | None) -> bool:
        return self.directory.remove(web_path)


@dataclass(frozen=True)
class MemberStorage:
    """Photo store plus the identity code directory."""

    photos: PhotoStore
    codes: ContentDirectory


def build_member_storage(settings: Settings) -> MemberStorage:
    return MemberStorage(
        photos=PhotoStore(
            ContentDirectory(settings.upload_dir, UPLOADS_WEB_PATH),
            max_bytes=settings.max_photo_bytes,
        ),
        codes=ContentDirectory(settings.qrcode_dir, QRCODES_WEB_PATH),
    )


def ensure_storage_dirs(storage: MemberStorage) -> None:
    """Create both content directories if absent. Safe to call repeatedly."""

    storage.photos.directory.ensure()
    storage.codes.ensure()


def _make_unique_photo_filename(extension: str) -> str:
    timestamp_ms = int(time.time() * 1000)
    return f"member-{timestamp_ms}-{uuid4().hex[:12]}{extension}"
