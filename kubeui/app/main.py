from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import replace
from pathlib import Path
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from structlog.contextvars import bind_contextvars, reset_contextvars

from kubeui.app.api.routes import router
from kubeui.app.dependencies import (
    get_calling_context,
    get_settings,
    get_telemetry,
    get_transport,
)
from kubeui.app.errors import UpstreamError, ValidationError
from kubeui.app.logging_config import configure_application_logging
from kubeui.app.telemetry import HttpRequestEvent

LOGGER = logging.getLogger("kubeui.app")
REQUEST_ID_HEADER = "X-Request-ID"
PROXY_PATH_PREFIX = "/api/"


def health_check() -> dict[str, str]:
    return {"status": "ok"}


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_application_logging(settings)

    # Resolve before serving; a ConfigError here aborts startup.
    LOGGER.info("loading kubeconfig path=%s", settings.kubeconfig_path)
    calling_context = get_calling_context()
    get_transport()
    LOGGER.info(
        "api server=%s context=%s",
        calling_context.server,
        calling_context.context_name,
    )
    if calling_context.verify_tls:
        LOGGER.info("tls verification enabled")
    else:
        LOGGER.warning(
            "tls verification DISABLED: API server certificates are not checked; "
            "set SKIP_TLS_VERIFY=false to enable verification"
        )
    yield


async def _validation_error_handler(_: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


async def _request_validation_error_handler(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, RequestValidationError)
    # Proxy routes only parse the write body; an unreadable one is invalid YAML.
    if not request.url.path.startswith(PROXY_PATH_PREFIX):
        return await request_validation_exception_handler(request, exc)
    problems = "; ".join(str(error.get("msg", "invalid request body")) for error in exc.errors())
    return JSONResponse(status_code=400, content={"error": f"Invalid YAML: {problems}"})


async def _upstream_error_handler(_: Request, exc: Exception) -> JSONResponse:
    stack = exc.stack if isinstance(exc, UpstreamError) else None
    return JSONResponse(status_code=500, content={"error": str(exc), "stack": stack})


def _request_id(request: Request) -> str:
    incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    return incoming or str(uuid4())


def _elapsed_ms(started_at: float) -> int:
    return int((perf_counter() - started_at) * 1000)


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    telemetry = get_telemetry()
    request_id = _request_id(request)
    method = request.method
    path = request.url.path
    context_tokens = bind_contextvars(
        http_request_id=request_id,
        http_method=method,
        http_path=path,
    )
    started_at = perf_counter()
    start_event = HttpRequestEvent(phase="start", request_id=request_id, method=method, path=path)
    telemetry.record(start_event)
    try:
        response = await call_next(request)
    except Exception as exc:
        telemetry.record(
            replace(
                start_event,
                phase="error",
                duration_ms=_elapsed_ms(started_at),
                error_type=type(exc).__name__,
            )
        )
        raise
    else:
        response.headers[REQUEST_ID_HEADER] = request_id
        telemetry.record(
            replace(
                start_event,
                phase="finish",
                duration_ms=_elapsed_ms(started_at),
                status_code=response.status_code,
            )
        )
        return response
    finally:
        reset_contextvars(**context_tokens)


def create_app() -> FastAPI:
    app = FastAPI(title="kubeui", version="0.1.0", lifespan=app_lifespan)
    settings = get_settings()

    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_error_handler)
    app.add_exception_handler(UpstreamError, _upstream_error_handler)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )
    _mount_web_ui(app=app, web_dist_dir=settings.web_ui_dist_dir)

    return app


def _mount_web_ui(*, app: FastAPI, web_dist_dir: Path) -> None:
    """Serve the single-page app: real files as-is, every other path gets index.html."""
    dist_root = web_dist_dir.resolve()
    index_path = dist_root / "index.html"

    def _web_ui(path: str) -> Response:
        candidate = (dist_root / path).resolve()
        if path and candidate.is_relative_to(dist_root) and candidate.is_file():
            return FileResponse(candidate)
        if index_path.is_file():
            return FileResponse(
                index_path,
                headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
            )
        return JSONResponse(
            status_code=404,
            content={
                "detail": (
                    "Web UI build not found. Build the frontend and point "
                    "KUBEUI_WEB_UI_DIST_DIR to its output."
                )
            },
        )

    app.add_api_route(
        "/{path:path}",
        _web_ui,
        methods=["GET"],
        include_in_schema=False,
    )


app = create_app()
