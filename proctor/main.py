import time
import traceback
import uuid
from contextlib import asynccontextmanager
from os import environ

import logfire
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from proctor.api.errors import app_error_handler
from proctor.app_config import get_app_environ_config
from proctor.domain.exam.registry import SessionRegistry
from proctor.domain.exam.session_store import SessionStore
from proctor.domain.realtime.hub import BroadcastHub
from proctor.domain.realtime.viewer import ViewerSettings
from proctor.services.process_scan import ProcessScanService
from proctor.shared.api.health import router as health_router
from proctor.shared.api.utils import (
    E_INVALID_PARAMS,
    ApiSuccess,
    api_failure,
    init_logger,
    load_routes,
)
from proctor.shared.network import get_local_ip
from proctor.utils.app_errors import AppError, AppErrorCode


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000

            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000

            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR.value,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(),
            )


async def app_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    logger.warning(
        "Validation error: path={} method={} errors={}",
        request.url.path,
        request.method,
        errors,
    )

    failure = api_failure(E_INVALID_PARAMS, errmesg=str(errors))

    return ORJSONResponse(status_code=422, content=failure.model_dump())


@asynccontextmanager
async def lifespan(server: FastAPI):
    cfg = get_app_environ_config()
    init_logger(cfg.DEBUG)

    logger.info("Application startup...")

    hub = BroadcastHub()
    registry = SessionRegistry(store=SessionStore(cfg.DATA_FILE), hub=hub)
    await registry.load()

    server.state.hub = hub
    server.state.registry = registry
    server.state.viewer_settings = ViewerSettings.from_config(cfg)
    server.state.scan_service = ProcessScanService(cfg.FORBIDDEN_APPS)

    hub.start()

    local_ip = get_local_ip()
    if local_ip:
        logger.info("Serving on LAN at http://{}:{}", local_ip, cfg.API_PORT)
    else:
        logger.warning("No LAN address found, participants must use the host name")

    if cfg.LOGFIRE_ENABLE:
        logger.info("Logfire initializing")

        logfire.configure(
            token=cfg.LOGFIRE_TOKEN,
            service_name="proctor-shield",
            service_version=environ.get("BUILD_COMMIT") or "dev",
        )

        logger.info("Logfire instrument fastapi")
        logfire.instrument_fastapi(server, capture_headers=True)

        logger.info("Logfire instrument pydantic")
        logfire.instrument_pydantic()

    yield

    logger.info("Application shutdown...")

    await registry.flush()
    await hub.stop()


app = FastAPI(
    version="1.0",
    title="Proctor Shield API",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

DEBUG = get_app_environ_config().DEBUG

app.add_middleware(HTTPLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=get_app_environ_config().API_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, app_validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore

load_routes(app, "/api/v1")
app.include_router(health_router)


@app.get("/", response_model=ApiSuccess)
async def root():
    return ApiSuccess(results="Proctor Shield backend is running")


def build_granian_kwargs():
    cfg = get_app_environ_config()
    kwargs = {
        "interface": "asgi",
        "address": cfg.API_HOST,
        "port": cfg.API_PORT,
        "workers": cfg.API_WORKERS,
        "reload": DEBUG,
    }

    return kwargs


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("proctor.main:app", **granian_kwargs).serve()
