import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from member_registry.core.config import get_settings
from member_registry.core.constants import QRCODES_WEB_PATH, UPLOADS_WEB_PATH
from member_registry.core.errors import InternalError, RegistryError
from member_registry.core.logging_config import configure_logging
from member_registry.routers.admin_auth import router as admin_auth_router
from member_registry.routers.members import router as members_router
from member_registry.services.auth_service import (
    SESSION_COOKIE_NAME,
    decode_session_cookie,
    encode_session_cookie,
)
from member_registry.services.file_storage import build_member_storage, ensure_storage_dirs

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)
    app = FastAPI(title=settings.app_name, debug=settings.app_debug)

    storage = build_member_storage(settings)
    ensure_storage_dirs(storage)

    @app.middleware("http")
    async def signed_session(request: Request, call_next):
        request.scope["session"] = decode_session_cookie(
            settings.secret_key,
            request.cookies.get(SESSION_COOKIE_NAME),
        )

        response = await call_next(request)
        session_data = request.scope.get("session")
        if isinstance(session_data, dict) and session_data:
            response.set_cookie(
                key=SESSION_COOKIE_NAME,
                value=encode_session_cookie(settings.secret_key, session_data),
                httponly=True,
                samesite="lax",
                secure=settings.is_production,
                path="/",
            )
        elif SESSION_COOKIE_NAME in request.cookies:
            response.delete_cookie(
                key=SESSION_COOKIE_NAME,
                httponly=True,
                samesite="lax",
                secure=settings.is_production,
                path="/",
            )
        return response

    @app.exception_handler(RegistryError)
    async def registry_error_handler(request: Request, exc: RegistryError):
        content: dict[str, object] = {"success": False, "message": exc.message}
        show_detail = isinstance(exc, InternalError) and not settings.is_production
        if show_detail and exc.__cause__ is not None:
            content["error"] = str(exc.__cause__)
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
        content: dict[str, object] = {"success": False, "message": "Server error"}
        if not settings.is_production:
            content["error"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    app.mount(
        UPLOADS_WEB_PATH,
        StaticFiles(directory=str(storage.photos.directory.root)),
        name="uploads",
    )
    app.mount(QRCODES_WEB_PATH, StaticFiles(directory=str(storage.codes.root)), name="qrcodes")
    app.include_router(admin_auth_router)
    app.include_router(members_router)
    return app


app = create_app()
