import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from blossom_server.auth import authenticate
from blossom_server.config import Settings, get_settings
from blossom_server.errors import BlossomError, PayloadTooLargeError, StorageError
from blossom_server.models import Action, BlobDescriptor, HealthResponse
from blossom_server.policy import AccessPolicy
from blossom_server.repository import BlobRepository
from blossom_server.service import BlobService
from blossom_server.telemetry import setup_logging

logger = logging.getLogger(__name__)


def digest_from_path(name: str) -> str:
    """``/<sha256>.<ext>`` and ``/<sha256>`` address the same blob."""
    return name.split(".", 1)[0].lower()


async def read_upload_body(request: Request, max_size_bytes: int) -> bytes:
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > max_size_bytes:
        raise PayloadTooLargeError(f"payload exceeds max upload size of {max_size_bytes} bytes")

    chunks = []
    total = 0
    async for chunk in request.stream():
        total += len(chunk)
        if total > max_size_bytes:
            raise PayloadTooLargeError(f"payload exceeds max upload size of {max_size_bytes} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    repository = BlobRepository(settings.database_path)
    policy = AccessPolicy.from_settings(settings)
    service = BlobService(repository, policy, settings.base_url)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        setup_logging(settings.log_level, settings.log_format, settings.app_name)
        Path(settings.database_path).parent.mkdir(parents=True, exist_ok=True)
        repository.init()
        yield

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "PUT", "HEAD", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=["Content-Length"],
    )

    def error_response(status_code: int, message: str, code: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": {"code": code, "message": message}},
        )

    @app.exception_handler(BlossomError)
    async def blossom_exception_handler(request: Request, exc: BlossomError):
        if isinstance(exc, StorageError):
            logger.error("storage failure: %s", exc.message, exc_info=exc, extra={"path": request.url.path})
        else:
            logger.warning(
                "request rejected: %s",
                exc.message,
                extra={"path": request.url.path, "error_code": exc.code, "reason": exc.reason},
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_: Request, exc: StarletteHTTPException):
        message = str(exc.detail) if exc.detail else "request failed"
        code_map = {
            400: "bad_request",
            401: "unauthorized",
            403: "forbidden",
            404: "not_found",
            405: "method_not_allowed",
            413: "payload_too_large",
        }
        return error_response(exc.status_code, message, code_map.get(exc.status_code, "error"))

    @app.get("/")
    def root():
        if settings.index_file and Path(settings.index_file).is_file():
            return FileResponse(path=settings.index_file, media_type="text/html")
        return {"status": "ok", "service": settings.app_name}

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok", environment=settings.app_env)

    @app.put("/upload", response_model=BlobDescriptor)
    async def upload_blob(request: Request, authorization: str | None = Header(default=None)):
        data = await read_upload_body(request, policy.max_upload_size_bytes)
        policy.check_payload_size(len(data))
        pubkey = authenticate(authorization, Action.UPLOAD, payload_size=len(data))
        return await run_in_threadpool(service.upload, data, pubkey)

    @app.get("/list/{pubkey}", response_model=list[BlobDescriptor])
    def list_blobs(pubkey: str):
        return service.list_by_owner(pubkey)

    @app.get("/{name}")
    def get_blob(name: str):
        record = service.fetch(digest_from_path(name))
        return Response(content=record.payload, media_type=record.mime_type)

    @app.head("/{name}")
    def has_blob(name: str):
        record = service.has(digest_from_path(name))
        return Response(
            status_code=200,
            media_type=record.mime_type,
            headers={"Content-Length": str(record.size)},
        )

    @app.delete("/{name}", response_model=BlobDescriptor)
    def delete_blob(name: str, authorization: str | None = Header(default=None)):
        digest = digest_from_path(name)
        pubkey = authenticate(authorization, Action.DELETE, target=digest)
        return service.delete(digest, pubkey)

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
