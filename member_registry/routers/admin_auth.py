"""Moderator authentication routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlmodel import Session

from member_registry.db.session import get_session
from member_registry.services.auth_service import (
    authenticate_admin,
    login_admin,
    logout_admin,
    parse_login_input,
)

router = APIRouter(prefix="/admin")


@router.post("/login")
def login(
    request: Request,
    session: Annotated[Session, Depends(get_session)],
    username: Annotated[str, Body()] = "",
    password: Annotated[str, Body()] = "",
):
    login_input = parse_login_input(username=username, password=password)
    if login_input is None:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": "Username and password are required"},
        )

    admin_user = authenticate_admin(
        session,
        username=login_input.username,
        password=login_input.password,
    )
    if admin_user is None:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"success": False, "message": "Invalid username or password"},
        )

    login_admin(request, session, admin_user)
    return JSONResponse(content={"success": True, "message": "Logged in"})


@router.post("/logout")
def logout(request: Request):
    logout_admin(request)
    return JSONResponse(content={"success": True, "message": "Logged out"})
