"""FastAPI application exposing ingest, deletion, reconciliation and serving.

Handlers are plain ``def`` functions: FastAPI runs them in its threadpool, so
blocking archive and filesystem work in one request never stalls another.
Every failure is rendered as ``{"error": <message>, "reason": <code>}``.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from ContentHub import __version__
from ContentHub.api.auth import admin_dependency
from ContentHub.api.serving import (
    cache_control_for,
    download_media_type_for,
    media_type_for,
    resolve_served_file,
)
from ContentHub.catalog.bootstrap import ContentHubBootstrap
from ContentHub.config.models import ContentHubConfig
from ContentHub.errors import (
    REASON_MISSING_FIELDS,
    ContentHubError,
    NotFoundError,
    ValidationError,
)
from ContentHub.logging_config import generate_correlation_id

logger = logging.getLogger(__name__)

_UPLOAD_CHUNK_SIZE = 1 << 20

_STATUS_BY_ERROR = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
}

_REASON_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: "bad-request",
    status.HTTP_401_UNAUTHORIZED: "unauthorized",
    status.HTTP_403_FORBIDDEN: "forbidden",
    status.HTTP_404_NOT_FOUND: "not-found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method-not-allowed",
    status.HTTP_413_CONTENT_TOO_LARGE: "payload-too-large",
}


class ContentUpdate(BaseModel):
    """Editable metadata; fields left out of the body are not touched."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: Optional[str] = None
    subject_area_id: Optional[Union[int, str]] = Field(default=None, alias="subjectAreaId")
    password: Optional[str] = None


class PasswordCheck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_id: Optional[int] = Field(default=None, alias="contentId")
    password: Optional[str] = None


def _error_response(status_code: int, message: str, reason: Optional[str]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "reason": reason})


def _status_for(exc: ContentHubError) -> int:
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


def _persist_upload(upload: UploadFile, *, suffix: str, max_bytes: Optional[int]) -> Path:
    """Copy an upload to a private temp file outside the served tree."""
    fd, name = tempfile.mkstemp(prefix="contenthub-upload-", suffix=suffix)
    target = Path(name)
    try:
        with os.fdopen(fd, "wb") as buffer:
            copied = 0
            for chunk in iter(lambda: upload.file.read(_UPLOAD_CHUNK_SIZE), b""):
                copied += len(chunk)
                if max_bytes is not None and copied > max_bytes:
                    raise StarletteHTTPException(
                        status_code=status.HTTP_413_CONTENT_TOO_LARGE,
                        detail=f"upload exceeds {max_bytes} bytes",
                    )
                buffer.write(chunk)
    except Exception:
        target.unlink(missing_ok=True)
        raise
    return target


def create_app(
    config: Optional[ContentHubConfig] = None,
    *,
    bootstrap: Optional[ContentHubBootstrap] = None,
) -> FastAPI:
    """Return a configured FastAPI application.

    Args:
        config: Configuration used to build components when ``bootstrap`` is None
        bootstrap: Pre-initialized components (the caller keeps ownership)
    """
    owns_bootstrap = bootstrap is None
    if bootstrap is None:
        bootstrap = ContentHubBootstrap(config or ContentHubConfig()).initialize()
    hub = bootstrap
    settings = hub.config

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI):
        try:
            yield
        finally:
            if owns_bootstrap:
                hub.close()

    app = FastAPI(
        title="ContentHub",
        description="Interactive content package ingest and serving",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.hub = hub
    require_admin = admin_dependency(settings.api)

    @app.exception_handler(ContentHubError)
    async def handle_content_error(_request: Request, exc: ContentHubError) -> JSONResponse:
        code = _status_for(exc)
        if code >= 500:
            logger.error("request failed: %s", exc, extra={"reason": exc.reason})
        return _error_response(code, str(exc), exc.reason)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        response = _error_response(
            exc.status_code, str(exc.detail), _REASON_BY_STATUS.get(exc.status_code)
        )
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    # ------------------------------------------------------------- health

    @app.get("/api/health")
    def health() -> JSONResponse:
        checks: Dict[str, bool] = {}
        errors: List[str] = []
        stats: Dict[str, int] = {}
        try:
            stats = hub.catalog.stats()
            checks["database"] = True
        except ContentHubError as exc:
            checks["database"] = False
            errors.append(f"Database error: {exc}")
        for name, path in (
            ("servedContent", settings.storage.served_root),
            ("uploads", settings.storage.uploads_root),
        ):
            ok = path.is_dir() and os.access(path, os.R_OK | os.W_OK)
            checks[name] = ok
            if not ok:
                errors.append(f"{name} directory not accessible: {path}")
        healthy = all(checks.values())
        return JSONResponse(
            status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "ok" if healthy else "error",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "version": __version__,
                "checks": checks,
                "stats": stats,
                "errors": errors,
            },
        )

    # ------------------------------------------------------------- ingest

    @app.post("/api/admin/upload", status_code=status.HTTP_201_CREATED)
    def upload_content(
        title: Optional[str] = Form(default=None),
        file: Optional[UploadFile] = File(default=None),
        subjectAreaId: Optional[str] = Form(default=None),
        password: Optional[str] = Form(default=None),
        coverImage: Optional[UploadFile] = File(default=None),
        _role: str = Depends(require_admin),
    ) -> Dict[str, Any]:
        correlation_id = generate_correlation_id()
        archive_path: Optional[Path] = None
        try:
            if _has_file(file) and (title or "").strip():
                archive_path = _persist_upload(
                    file,
                    suffix=settings.storage.archive_extension,
                    max_bytes=settings.api.max_upload_bytes,
                )
            cover = coverImage.file.read() if _has_file(coverImage) else None
            result = hub.lifecycle.ingest(
                title,
                archive_path,
                subject_area_id=subjectAreaId,
                password=password,
                cover_image=cover,
                correlation_id=correlation_id,
            )
        finally:
            if archive_path is not None:
                archive_path.unlink(missing_ok=True)
        return {"success": True, **result.to_dict()}

    # ------------------------------------------------------- admin content

    @app.get("/api/admin/content")
    def list_content(_role: str = Depends(require_admin)) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in hub.catalog.get_all_records()]

    @app.get("/api/admin/content/{content_id}")
    def get_content(content_id: int, _role: str = Depends(require_admin)) -> Dict[str, Any]:
        return hub.lifecycle.get(content_id).to_dict()

    @app.put("/api/admin/content/{content_id}")
    def update_content(
        content_id: int,
        payload: ContentUpdate,
        _role: str = Depends(require_admin),
    ) -> Dict[str, Any]:
        changes = {name: getattr(payload, name) for name in payload.model_fields_set}
        record = hub.lifecycle.update_metadata(content_id, **changes)
        return record.to_dict()

    @app.post("/api/admin/content/{content_id}/cover")
    def update_cover(
        content_id: int,
        coverImage: Optional[UploadFile] = File(default=None),
        _role: str = Depends(require_admin),
    ) -> Dict[str, Any]:
        if not _has_file(coverImage):
            raise ValidationError("coverImage is required", reason=REASON_MISSING_FIELDS)
        record = hub.lifecycle.replace_cover(content_id, coverImage.file.read())
        return record.to_dict()

    @app.delete("/api/admin/content/{content_id}")
    def delete_content(content_id: int, _role: str = Depends(require_admin)) -> Dict[str, Any]:
        record = hub.lifecycle.delete(content_id)
        return {
            "message": "Content deleted successfully",
            "contentId": record.id,
            "slug": record.slug,
        }

    # ------------------------------------------------------ reconciliation

    @app.get("/api/admin/cleanup-packages")
    def scan_packages(_role: str = Depends(require_admin)) -> Dict[str, Any]:
        return hub.reconciler.scan().to_dict()

    @app.post("/api/admin/cleanup-packages")
    def cleanup_packages(_role: str = Depends(require_admin)) -> Dict[str, Any]:
        report = hub.reconciler.cleanup()
        return {"success": True, **report.to_dict(key="deletedFolders")}

    @app.get("/api/admin/uploads")
    def list_uploads(_role: str = Depends(require_admin)) -> Dict[str, Any]:
        files = [entry.to_dict() for entry in hub.reconciler.list_uploads()]
        return {"files": files, "total": len(files)}

    @app.get("/api/admin/uploads/download")
    def download_upload(
        file: Optional[str] = None, _role: str = Depends(require_admin)
    ) -> FileResponse:
        target = hub.reconciler.find_upload(file)
        return FileResponse(
            target, media_type=download_media_type_for(target), filename=target.name
        )

    @app.delete("/api/admin/uploads/{filename}")
    def delete_upload(filename: str, _role: str = Depends(require_admin)) -> Dict[str, Any]:
        relative = hub.reconciler.delete_upload(filename)
        return {
            "success": True,
            "message": "File deleted successfully",
            "filename": filename,
            "path": relative,
        }

    @app.get("/api/admin/cleanup-uploads")
    def scan_uploads(_role: str = Depends(require_admin)) -> Dict[str, Any]:
        return hub.reconciler.scan_uploads().to_dict()

    @app.post("/api/admin/cleanup-uploads")
    def cleanup_uploads(_role: str = Depends(require_admin)) -> Dict[str, Any]:
        report = hub.reconciler.cleanup_uploads()
        return {"success": True, **report.to_dict(key="deletedFiles")}

    @app.get("/api/admin/dangling")
    def dangling_records(_role: str = Depends(require_admin)) -> Dict[str, Any]:
        records = [item.to_dict() for item in hub.reconciler.find_dangling_records()]
        return {"danglingRecords": records, "totalDangling": len(records)}

    # ------------------------------------------------------- password gate

    @app.get("/api/content/{content_id}/protection")
    def check_protection(content_id: int) -> Dict[str, bool]:
        record = hub.lifecycle.get(content_id)
        return {"isPasswordProtected": record.is_password_protected}

    @app.post("/api/content/verify-password")
    def verify_password(payload: PasswordCheck) -> JSONResponse:
        if payload.content_id is None or not payload.password:
            raise ValidationError(
                "contentId and password are required", reason=REASON_MISSING_FIELDS
            )
        if not hub.lifecycle.verify_password(payload.content_id, payload.password):
            return _error_response(
                status.HTTP_401_UNAUTHORIZED, "Invalid password", "invalid-password"
            )
        return JSONResponse(content={"success": True})

    # ------------------------------------------------------------- serving

    @app.get("/content/{slug}/{file_path:path}")
    def serve_content_file(slug: str, file_path: str) -> FileResponse:
        target = resolve_served_file(settings.storage.served_root, slug, file_path)
        return FileResponse(
            target,
            media_type=media_type_for(target),
            headers={"Cache-Control": cache_control_for(target, settings.serving)},
        )

    return app


__all__ = ["ContentUpdate", "PasswordCheck", "create_app"]
