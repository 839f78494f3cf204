"""Moderator authentication and signed session cookie helpers."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from hmac import compare_digest
from typing import Annotated, Any

import bcrypt
from fastapi import Depends, HTTPException, Request, status
from pydantic import ValidationError
from sqlmodel import Session, col, select

from member_registry.core.constants import utcnow
from member_registry.db.session import get_session
from member_registry.models.admin_user import AdminUser
from member_registry.schemas.auth import AdminLoginInput

SESSION_ADMIN_USER_ID_KEY = "admin_user_id"
SESSION_COOKIE_NAME = "member_registry_session"


def hash_password(password: str) -> str:
    """Hash password using bcrypt."""

    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def decode_session_cookie(secret_key: str, raw_cookie: str | None) -> dict[str, Any]:
    """Decode and validate signed session cookie payload."""

    if raw_cookie is None or "." not in raw_cookie:
        return {}
    encoded_payload, signature = raw_cookie.rsplit(".", 1)
    if not compare_digest(_sign_payload(secret_key, encoded_payload), signature):
        return {}
    try:
        padding = "=" * (-len(encoded_payload) % 4)
        payload = base64.urlsafe_b64decode(f"{encoded_payload}{padding}".encode())
        data = json.loads(payload.decode("utf-8"))
    except (ValueError, json.JSONDecodeError):
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(key): value for key, value in data.items()}


def encode_session_cookie(secret_key: str, session_data: dict[str, Any]) -> str:
    """Encode session dict and sign it for cookie storage."""

    raw_payload = json.dumps(session_data, separators=(",", ":"), sort_keys=True).encode("utf-8")
    encoded_payload = base64.urlsafe_b64encode(raw_payload).decode("utf-8").rstrip("=")
    return f"{encoded_payload}.{_sign_payload(secret_key, encoded_payload)}"


def parse_login_input(username: str, password: str) -> AdminLoginInput | None:
    """Return validated login input or ``None`` for invalid payload."""

    try:
        return AdminLoginInput(username=username, password=password)
    except ValidationError:
        return None


def authenticate_admin(session: Session, username: str, password: str) -> AdminUser | None:
    admin_user = session.exec(select(AdminUser).where(col(AdminUser.username) == username)).first()
    if admin_user is None:
        return None
    if not verify_password(password, admin_user.password_hash):
        return None
    return admin_user


def get_authenticated_admin(request: Request, session: Session) -> AdminUser | None:
    """Return the currently authenticated admin from session."""

    admin_user_id = request.session.get(SESSION_ADMIN_USER_ID_KEY)
    if not isinstance(admin_user_id, int):
        return None
    return session.get(AdminUser, admin_user_id)


def login_admin(request: Request, session: Session, admin_user: AdminUser) -> None:
    """Persist login state in the session cookie and stamp the account."""

    admin_user.last_login_at = utcnow()
    session.add(admin_user)
    session.commit()
    request.session[SESSION_ADMIN_USER_ID_KEY] = admin_user.id


def logout_admin(request: Request) -> None:
    request.session.clear()


def require_admin(
    request: Request,
    session: Annotated[Session, Depends(get_session)],
) -> AdminUser:
    """Route dependency guarding moderator-only endpoints."""

    admin_user = get_authenticated_admin(request, session)
    if admin_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return admin_user


def _sign_payload(secret_key: str, payload: str) -> str:
    digest = hmac.new(secret_key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()
