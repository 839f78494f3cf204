"""Verification QR code generation."""

from __future__ import annotations

import logging
from pathlib import Path

import qrcode
import qrcode.constants

from member_registry.services.file_storage import ContentDirectory

logger = logging.getLogger(__name__)


def build_verification_url(base_url: str, member_id: str) -> str:
    return f"{base_url.rstrip('/')}/verify/{member_id}"


def generate_identity_code(
    member_id: str,
    *,
    base_url: str,
    directory: ContentDirectory,
) -> str | None:
    """Write ``<member_id>.png`` and return its web path, or ``None`` on any failure."""

    file_name = f"{member_id}.png"
    target_path = directory.root / file_name
    try:
        _render_code_image(build_verification_url(base_url, member_id), target_path)
    except Exception:
        logger.warning("QR code generation failed for member %s", member_id, exc_info=True)
        _discard_partial_image(target_path)
        return None
    return directory.web_path(file_name)


def _discard_partial_image(target_path: Path) -> None:
    try:
        target_path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not delete partial QR image %s", target_path, exc_info=True)


def _render_code_image(payload: str, target_path: Path) -> None:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=4,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")
    with target_path.open("wb") as image_file:
        image.save(image_file)
