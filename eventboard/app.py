"""
FastAPI application entry point for the event board backend.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventboard.config import Settings, get_settings
from eventboard.routes import router
from eventboard.voting import router as voting_router

logger = logging.getLogger(__name__)

API_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers,
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(
        str(part)
        for part in first.get("loc", ())
        if part not in ("body", "query", "path", "form")
    )
    return f"{field}: {first.get('msg')}" if field else str(first.get("msg"))


def _install_error_handlers(app: FastAPI, api_prefix: str) -> None:
    """Render every error as a ``{"success": false, "error": ...}`` envelope."""

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        if (
            exc.status_code == 404
            and detail == "Not Found"
            and request.url.path.startswith(api_prefix)
        ):
            detail = "API route not found"
        return _error_response(
            exc.status_code, str(detail), headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return _error_response(400, _validation_message(exc))

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(500, "Internal server error")


def _mount_frontend(app: FastAPI, static_dir: str, api_prefix: str) -> None:
    """Serve the built single page app; unknown paths fall back to index.html."""
    root = Path(static_dir).resolve()
    index = root / "index.html"
    api_root = api_prefix.strip("/")

    if api_root:
        # Any method on an unknown API path is a 404, never the page.
        @app.api_route(
            f"/{api_root}/{{rest:path}}",
            methods=API_METHODS,
            include_in_schema=False,
        )
        def unknown_api_route(rest: str):
            raise HTTPException(status_code=404, detail="API route not found")

    @app.get("/{full_path:path}", include_in_schema=False)
    def frontend(full_path: str):
        if full_path == api_root or full_path.startswith(api_root + "/"):
            raise HTTPException(status_code=404, detail="API route not found")
        candidate = (root / full_path).resolve()
        if full_path and root in candidate.parents and candidate.is_file():
            return FileResponse(candidate)
        if not index.is_file():
            raise HTTPException(status_code=404, detail="Frontend build not found")
        return FileResponse(index)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Event Board Backend", version="0.1.0")
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url] if settings.frontend_url else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _install_error_handlers(app, settings.api_prefix)

    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(voting_router, prefix=settings.api_prefix)

    if not settings.use_spaces:
        Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
        app.mount(
            "/uploads",
            StaticFiles(directory=settings.upload_dir),
            name="uploads",
        )
    if settings.serve_frontend:
        _mount_frontend(app, settings.static_dir, settings.api_prefix)
    return app


app = create_app()
