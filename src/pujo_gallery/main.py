# src/pujo_gallery/main.py
"""Main entry point for the Pujo Gallery application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from pujo_gallery.api.v1 import moderation_router, pandals_router, submissions_router
from pujo_gallery.core.errors import ErrorKind, GalleryError
from pujo_gallery.core.settings import settings
from pujo_gallery.db.session import create_tables
from pujo_gallery.services.container import GalleryServices, build_services

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.INVALID_TOKEN: 401,
    ErrorKind.EXPIRED_TOKEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UPSTREAM: 500,
}

# Initialize FastAPI app
app = FastAPI(
    title="Pujo Gallery API",
    description="Photo submissions with link-based moderation",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(submissions_router, prefix=settings.api_prefix)
app.include_router(moderation_router, prefix=settings.api_prefix)
app.include_router(pandals_router, prefix=settings.api_prefix)


@app.exception_handler(GalleryError)
async def handle_gallery_error(request: Request, exc: GalleryError) -> JSONResponse:
    """Translate a lifecycle error into its status code and `{error}` body."""
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if exc.kind is ErrorKind.UPSTREAM:
        logger.error(
            "Upstream failure on %s %s (submission=%s, collaborator=%s): %s",
            request.method,
            request.url.path,
            exc.submission_id,
            exc.collaborator,
            exc.message,
        )
        message = exc.public_message
    elif exc.kind in (ErrorKind.INVALID_TOKEN, ErrorKind.EXPIRED_TOKEN):
        message = exc.public_message
    else:
        message = exc.message
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render missing or malformed request fields as a 400 `{error}` body."""
    errors = exc.errors()
    field = ".".join(str(part) for part in errors[0].get("loc", ())[1:]) if errors else ""
    message = f"Missing or invalid field: {field}" if field else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.on_event("startup")
async def on_startup() -> None:
    # No-op when the host (a test runner, a process manager) already set up logging.
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if settings.auto_create_tables:
        create_tables()
    # Tests may install their own container before startup.
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings)
        app.state.owns_services = True
    else:
        app.state.owns_services = False


@app.on_event("shutdown")
async def on_shutdown() -> None:
    services: GalleryServices | None = getattr(app.state, "services", None)
    if services is not None and getattr(app.state, "owns_services", False):
        await services.aclose()
        app.state.services = None


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": "Pujo Gallery API",
        "version": settings.app_version,
        "description": "Photo submissions with link-based moderation",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("pujo_gallery.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
