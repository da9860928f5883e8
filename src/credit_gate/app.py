from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.router import router
from .bootstrap import Gateway, build_gateway
from .config import Settings, get_settings
from .errors import ConfigurationError, GateError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _error_slug(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase.lower().replace(" ", "_").replace("-", "_")
    except ValueError:
        return "http_error"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GateError)
    async def gate_error_handler(request: Request, exc: GateError) -> JSONResponse:
        if isinstance(exc, ConfigurationError):
            logger.error("Configuration error on %s: %s", request.url.path, exc.reason)
        elif exc.status_code >= 500:
            logger.error("%s on %s: %s", exc.code, request.url.path, exc.details)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": _error_slug(exc.status_code), "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "invalid_request",
                "message": "Invalid request body.",
                "details": {"errors": jsonable_encoder(exc.errors())},
            },
        )


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[Gateway] = None,
) -> FastAPI:
    """
    Application factory.

    When the gateway cannot be built the app still starts, reports
    ``unavailable`` on /health and answers every other route with a
    generic configuration error.
    """
    settings = settings or get_settings()
    startup_error: Optional[str] = None
    if gateway is None:
        try:
            gateway = build_gateway(settings)
        except ConfigurationError as exc:
            logger.error("Gateway unavailable: %s", exc.reason)
            startup_error = exc.reason

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if app.state.gateway is not None:
            await app.state.gateway.aclose()

    app = FastAPI(title="credit-gate", lifespan=lifespan)
    app.state.gateway = gateway
    app.state.startup_error = startup_error
    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/health", tags=["health"])
    async def health() -> JSONResponse:
        if app.state.gateway is None:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unavailable"},
            )
        return JSONResponse(content={"status": "ok"})

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
