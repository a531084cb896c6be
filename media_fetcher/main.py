import os
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException

from media_fetcher.api import health, media
from media_fetcher.config.settings import CONFIG_PATH, config
from media_fetcher.core.errors import MediaError
from media_fetcher.core.logging import configure_logging, log_error, log_warning
from media_fetcher.core.state import state
from media_fetcher.infra.redis import close_redis, init_redis
from media_fetcher.models.response import ErrorResponse
from media_fetcher.services.capabilities import CapabilityProber
from media_fetcher.services.direct import close_client

configure_logging()

app = FastAPI(
    title=config.api.title,
    version=config.api.version,
    docs_url="/docs" if config.api.debug else None,
    redoc_url=None
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def assign_request_id(request: Request, call_next):
    request.state.request_id = uuid.uuid4().hex[:12]
    response = await call_next(request)
    response.headers["X-Request-ID"] = request.state.request_id
    return response


def failure(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message).model_dump(),
        headers=headers
    )


@app.exception_handler(MediaError)
async def media_error_handler(request: Request, exc: MediaError):
    log_warning(request, f"{exc.__class__.__name__} ({exc.status_code}): {exc.message}")
    return failure(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    reason = errors[0].get("msg", "Invalid request body") if errors else "Invalid request body"
    return failure(400, reason)


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return failure(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_error(request, f"Unhandled error: {exc.__class__.__name__}: {exc}")
    return failure(500, "Internal Server Error")


# Routes
app.include_router(health.router, tags=["Health"])
app.include_router(media.router, prefix="/api/media", tags=["Media"])

# Finished artifacts
app.mount(
    config.media.url_prefix,
    StaticFiles(directory=config.media.public_dir, check_dir=False),
    name="media"
)


@app.on_event("startup")
async def startup_event():
    # Write the effective configuration on first start
    config_dir = os.path.dirname(CONFIG_PATH)
    if config_dir and not os.path.exists(config_dir):
        os.makedirs(config_dir, exist_ok=True)
    if not os.path.exists(CONFIG_PATH):
        config.save_to_file(CONFIG_PATH)

    os.makedirs(config.media.public_dir, exist_ok=True)
    os.makedirs(config.media.scratch_dir, exist_ok=True)

    snapshot = await CapabilityProber().probe()
    state.ytdlp_version = snapshot.extraction_tool_version or "not installed"
    state.ffmpeg_version = snapshot.merge_tool_version or "not installed"

    state.redis = await init_redis()


@app.on_event("shutdown")
async def shutdown_event():
    await close_redis()
    await close_client()
