"""Metastore API: project metadata and images, stored by chain ID and token address."""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from metastore.api.info import app_info
from metastore.api.projects import app_projects
from metastore.config import Environment, get_settings
from metastore.projects.intake import IntakeError, expected_inputs
from metastore.projects.store import InvalidProjectKey, StorageError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    for directory in (settings.storage_dir, settings.upload_dir):
        directory.mkdir(parents=True, exist_ok=True)
    logger.info(
        f"Storage directories initialized: {settings.storage_dir}, {settings.upload_dir} "
        f"(environment={settings.environment.value}, max image size={settings.max_image_size} bytes, "
        f"allowed origins={settings.allowed_origins})"
    )
    yield


app = FastAPI(
    title="Metastore",
    description=__doc__ if __doc__ else "",
    openapi_tags=[
        dict(name="projects", description="Endpoints to store project metadata and read stored files"),
        dict(name="informational", description="Server status"),
    ],
    lifespan=lifespan,
)
app.include_router(app_info)
app.include_router(app_projects)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().allowed_origins or [],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request.state.request_id = uuid.uuid4().hex
    start = time.perf_counter()
    response = await call_next(request)
    duration = (time.perf_counter() - start) * 1000
    logger.info(
        f"{request.method} {request.url.path} {response.status_code} {duration:.0f}ms "
        f"ip={request.client.host if request.client else None} "
        f"user_agent={request.headers.get('user-agent')!r} request_id={request.state.request_id}"
    )
    return response


def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=dict(success=False, error=error, **extra))


@app.exception_handler(IntakeError)
async def intake_error_handler(request: Request, exc: IntakeError):
    logger.warning(f"Rejected submission: {exc}")
    return _error(400, str(exc), **exc.details, requiredFields=expected_inputs(get_settings().max_image_size))


@app.exception_handler(InvalidProjectKey)
async def invalid_key_handler(request: Request, exc: InvalidProjectKey):
    return _error(400, str(exc), requiredFields=expected_inputs(get_settings().max_image_size))


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    request_id = getattr(request.state, "request_id", None)
    logger.error(f"Metadata storage failed (request_id={request_id}): {exc}", exc_info=exc)
    if get_settings().environment == Environment.development:
        return _error(500, "Failed to store project metadata", details=str(exc), requestId=request_id)
    return _error(500, "Failed to store project metadata")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(
        400,
        "There was an issue with the data you sent.",
        fields_invalid=jsonable_errors(exc),
        requiredFields=expected_inputs(get_settings().max_image_size),
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [dict(loc=list(e.get("loc", ())), msg=e.get("msg"), type=e.get("type")) for e in exc.errors()]


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    error_id = uuid.uuid4().hex
    logger.error(f"Server error {error_id} on {request.method} {request.url.path}", exc_info=exc)
    if get_settings().environment == Environment.development:
        return _error(500, "Internal server error", errorId=error_id, details=str(exc))
    return _error(500, "Internal server error", errorId=error_id)
