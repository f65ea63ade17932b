"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError as BodyValidationError
from fastapi.responses import JSONResponse

from naql_otp.api.router import router as otp_router
from naql_otp.config import Settings, get_settings
from naql_otp.errors import DeliveryError, RelayError, ResetLinkError
from naql_otp.otp.store import OTPStore
from naql_otp.services.reset_links import ResetLinkService
from naql_otp.services.whatsapp import WhatsAppSender

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format=LOG_FORMAT)


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Event-loop fallback for errors no task awaited."""
    logger.error(
        "❌ Unhandled asynchronous error: %s",
        context.get("message"),
        exc_info=context.get("exception"),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    settings: Settings = app.state.settings
    store: OTPStore = app.state.otp_store

    logger.info("Starting %s OTP relay (%s) …", settings.app_name, settings.environment)
    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)
    store.start_sweeper()
    yield
    logger.info("Shutting down %s OTP relay …", settings.app_name)
    await store.stop_sweeper()
    await app.state.sender.aclose()


def create_app(
    settings: Settings | None = None,
    *,
    otp_store: OTPStore | None = None,
    sender: WhatsAppSender | None = None,
    reset_links: ResetLinkService | None = None,
) -> FastAPI:
    """Build the application and its collaborators.

    Anything not passed in is built from *settings* (or the environment).
    """
    if settings is None:
        settings = get_settings()
    configure_logging(settings.debug)

    app = FastAPI(
        title=f"{settings.app_name} OTP relay",
        description="WhatsApp one-time-password issuance and verification",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    if otp_store is None:
        otp_store = OTPStore(
            ttl_seconds=settings.otp_ttl_seconds,
            max_attempts=settings.otp_max_attempts,
            sweep_interval=settings.otp_sweep_interval_seconds,
        )
    if sender is None:
        sender = WhatsAppSender.from_settings(settings)
    if reset_links is None:
        reset_links = ResetLinkService.from_settings(settings)
    app.state.otp_store = otp_store
    app.state.sender = sender
    app.state.reset_links = reset_links

    app.include_router(otp_router)
    _register_error_handlers(app)

    @app.get("/health")
    async def health_check():
        """Simple liveness probe."""
        return {
            "ok": True,
            "message": "✅ Server is running normally",
            "timestamp": datetime.now(UTC).isoformat(),
            "pending_codes": len(app.state.otp_store),
        }

    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RelayError)
    async def relay_error(request: Request, exc: RelayError) -> JSONResponse:
        if isinstance(exc, (DeliveryError, ResetLinkError)):
            logger.error("❌ %s failed: %s (%s)", request.url.path, exc.user_message, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": exc.user_message},
        )

    @app.exception_handler(BodyValidationError)
    async def bad_body(request: Request, exc: BodyValidationError) -> JSONResponse:
        logger.info("Rejected malformed body on %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"ok": False, "error": "Invalid request body"})

    @app.exception_handler(Exception)
    async def unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("❌ Unexpected error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "An unexpected error occurred"},
        )
