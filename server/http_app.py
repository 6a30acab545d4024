# server/http_app.py
from __future__ import annotations

import logging
import sys
from typing import Any, AsyncIterator, Dict, Optional

from anyio import from_thread
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.formparsers import MultiPartException, MultiPartParser

from app.config import Settings, load_roots
from app.di import Container, build_container
from app.logging import configure_logging
from app.services.filesystem import UploadReport
from app.services.outcome import Failure, FailureKind
from server.tools.files import FsMoveIn, FsPathIn, FsRenameIn

logger = logging.getLogger(__name__)

STATUS_BY_KIND: Dict[FailureKind, int] = {
    FailureKind.BAD_REQUEST: 400,
    FailureKind.FORBIDDEN: 403,
    FailureKind.NOT_FOUND: 404,
    FailureKind.CONFLICT: 409,
    FailureKind.PAYLOAD_TOO_LARGE: 413,
    FailureKind.INTERNAL: 500,
    FailureKind.UNAVAILABLE: 501,
}


# ---------- Response helpers ----------

def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status)


def failure_response(failure: Failure) -> JSONResponse:
    # Raw OS error text never leaves the process; it was logged by the service.
    if failure.kind is FailureKind.INTERNAL:
        return _error(500, "internal server error")
    return _error(STATUS_BY_KIND[failure.kind], failure.message)


def upload_status(report: UploadReport) -> int:
    if report.uploaded:
        return 201
    if report.skipped:
        return 409
    if report.errors:
        return 400
    return 201


def upload_body(report: UploadReport) -> Dict[str, Any]:
    body: Dict[str, Any] = {"uploaded": report.uploaded, "skipped": report.skipped}
    if report.errors:
        body["errors"] = report.errors
    return body


class BodyTooLarge(Exception):
    pass


async def limited_stream(stream: AsyncIterator[bytes], limit: int) -> AsyncIterator[bytes]:
    received = 0
    async for chunk in stream:
        received += len(chunk)
        if received > limit:
            raise BodyTooLarge()
        yield chunk


def _missing_query() -> JSONResponse:
    return _error(400, "path query parameter is required")


# ---------- Application factory ----------

def create_http_app(container: Optional[Container] = None) -> FastAPI:
    container = container or build_container()
    fs = container.fs_service
    shares = container.share_service
    max_upload = container.settings.MAX_UPLOAD_SIZE

    app = FastAPI(title="files-svc", version="0.1.0")
    app.state.container = container

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return _error(400, "invalid JSON body")

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz():
        return "OK"

    # ---------- Files ----------

    @app.put("/api/files")
    async def upload_files(request: Request, path: str = ""):
        if not request.headers.get("content-type", "").startswith("multipart/form-data"):
            return _error(400, "content-type must be multipart/form-data")
        length = request.headers.get("content-length", "")
        if length.isdigit() and int(length) > max_upload:
            return _error(413, "upload size exceeds limit")

        target = fs.resolve_upload_target(path)
        if isinstance(target, Failure):
            return failure_response(target)

        # Chunked requests carry no Content-Length; the body itself is counted.
        parser = MultiPartParser(request.headers, limited_stream(request.stream(), max_upload))
        try:
            form = await parser.parse()
        except BodyTooLarge:
            return _error(413, "upload size exceeds limit")
        except MultiPartException:
            return _error(400, "failed to parse multipart form")

        try:
            files = [
                (value.filename, value.file)
                for _, value in form.multi_items()
                if isinstance(value, UploadFile) and value.filename
            ]

            def is_cancelled() -> bool:
                return from_thread.run(request.is_disconnected)

            outcome = await run_in_threadpool(fs.upload, path, files, is_cancelled)
        finally:
            await form.close()

        if isinstance(outcome, Failure):
            return failure_response(outcome)
        report = outcome.value
        return JSONResponse(upload_body(report), status_code=upload_status(report))

    @app.delete("/api/files")
    def delete_file(path: Optional[str] = None):
        if path is None:
            return _missing_query()
        outcome = fs.delete(path)
        if isinstance(outcome, Failure):
            return failure_response(outcome)
        return Response(status_code=204)

    @app.post("/api/files/move")
    def move_file(body: FsMoveIn):
        outcome = fs.move(body.source, body.dest)
        if isinstance(outcome, Failure):
            return failure_response(outcome)
        moved = outcome.value
        return {"from": moved.source, "to": moved.dest, "success": True}

    @app.post("/api/files/rename")
    def rename_file(body: FsRenameIn):
        outcome = fs.rename(body.path, body.name)
        if isinstance(outcome, Failure):
            return failure_response(outcome)
        renamed = outcome.value
        return {"from": renamed.source, "to": renamed.dest, "success": True}

    # ---------- Folders ----------

    @app.post("/api/folders")
    def create_folder(body: FsPathIn):
        outcome = fs.mkdir(body.path)
        if isinstance(outcome, Failure):
            return failure_response(outcome)
        return JSONResponse({"created": outcome.value}, status_code=201)

    # ---------- Public shares ----------

    @app.get("/api/public-shares")
    def list_shares():
        outcome = shares.list()
        if isinstance(outcome, Failure):
            return failure_response(outcome)
        return outcome.value

    @app.post("/api/public-shares")
    def create_share(body: FsPathIn):
        outcome = shares.publish(body.path)
        if isinstance(outcome, Failure):
            return failure_response(outcome)
        link = outcome.value
        return JSONResponse({"shareId": link.share_id, "path": link.path}, status_code=201)

    @app.delete("/api/public-shares")
    def delete_share(path: Optional[str] = None):
        if path is None:
            return _missing_query()
        outcome = shares.unpublish(path)
        if isinstance(outcome, Failure):
            return failure_response(outcome)
        return Response(status_code=204)

    return app


def main():
    import uvicorn

    settings = Settings()
    configure_logging(settings.LOG_LEVEL)
    try:
        load_roots(settings)
    except ValueError as e:
        sys.exit(f"files-svc: {e}")
    logger.info("base directory: %s", settings.UPLOAD_BASE_DIR)
    if settings.PUBLIC_BASE_DIR:
        logger.info("public base directory: %s", settings.PUBLIC_BASE_DIR)
    logger.info("max upload size: %d bytes", settings.MAX_UPLOAD_SIZE)
    uvicorn.run(
        "server.http_app:create_http_app",
        factory=True,
        host=settings.HTTP_HOST,
        port=settings.HTTP_PORT,
        reload=False,
    )


if __name__ == "__main__":
    main()
