"""OTP relay endpoints.

Endpoints
---------
POST /send-otp          → issue a code and deliver it over WhatsApp
POST /verify-otp        → check a submitted code
POST /send-reset-link   → mint a Firebase reset link and deliver it
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictInt, StrictStr

from naql_otp.api.dependencies import (
    get_app_settings,
    get_otp_store,
    get_reset_links,
    get_sender,
)
from naql_otp.config import Settings
from naql_otp.errors import RequestValidationError
from naql_otp.otp.phone import mask_phone, normalize_phone
from naql_otp.otp.store import OTPStore, VerifyResult, VerifyStatus
from naql_otp.services.reset_links import ResetLinkService
from naql_otp.services.whatsapp import WhatsAppSender, otp_message, reset_link_message

logger = logging.getLogger(__name__)

router = APIRouter(tags=["otp"])


# ── Request / response models ────────────────────────────

class PhoneRequest(BaseModel):
    phone: str | None = None


class VerifyRequest(BaseModel):
    phone: str | None = None
    code: StrictStr | StrictInt | None = None


class OKResponse(BaseModel):
    ok: bool = True
    message: str


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str


_VERIFY_FAILURES = {
    VerifyStatus.NOT_FOUND: "❌ No verification code was sent to this number",
    VerifyStatus.EXPIRED: "❌ The verification code has expired",
    VerifyStatus.TOO_MANY_ATTEMPTS: "❌ Maximum number of attempts exceeded",
}


def verify_failure_message(result: VerifyResult) -> str:
    """User-facing text for a failed verification."""
    if result.status is VerifyStatus.WRONG_CODE:
        return (
            f"❌ Incorrect code ({result.attempts}/{result.max_attempts}), "
            f"{result.remaining_attempts} attempts left"
        )
    return _VERIFY_FAILURES[result.status]


def _require_phone(phone: str | None) -> str:
    if not phone:
        raise RequestValidationError("Phone number is required")
    return normalize_phone(phone)


# ── Endpoints ────────────────────────────────────────────

@router.post(
    "/send-otp",
    response_model=OKResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def send_otp(
    body: PhoneRequest,
    store: OTPStore = Depends(get_otp_store),
    sender: WhatsAppSender = Depends(get_sender),
    settings: Settings = Depends(get_app_settings),
):
    """Issue a fresh code for the phone and send it over WhatsApp."""
    phone = _require_phone(body.phone)
    issued = store.issue(phone)

    logger.info("📤 Sending verification code to %s", mask_phone(phone))
    await sender.send(
        phone,
        otp_message(settings.app_name, issued.code, settings.otp_ttl_seconds // 60),
    )
    return OKResponse(message="✅ Verification code sent to WhatsApp")


@router.post(
    "/verify-otp",
    response_model=OKResponse,
    responses={400: {"model": ErrorResponse}},
)
async def verify_otp(body: VerifyRequest, store: OTPStore = Depends(get_otp_store)):
    """Check a submitted code against the pending one for the phone."""
    code = str(body.code) if body.code is not None else ""
    if not body.phone or not code:
        raise RequestValidationError("Phone number and code are required")
    phone = normalize_phone(body.phone)

    logger.info("🧩 Verifying code for %s", mask_phone(phone))
    result = store.verify(phone, code)
    if result.ok:
        return OKResponse(message="✅ Verified successfully")

    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error=verify_failure_message(result)).model_dump(),
    )


@router.post(
    "/send-reset-link",
    response_model=OKResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def send_reset_link(
    body: PhoneRequest,
    reset_links: ResetLinkService = Depends(get_reset_links),
    sender: WhatsAppSender = Depends(get_sender),
    settings: Settings = Depends(get_app_settings),
):
    """Mint a password-reset link for the phone's account and send it."""
    phone = _require_phone(body.phone)

    logger.info("📤 Sending reset link to %s", mask_phone(phone))
    link = await reset_links.generate(phone)
    await sender.send(
        phone,
        reset_link_message(settings.app_name, link),
        fallback_error="Failed to send the reset link",
    )
    return OKResponse(message="✅ Reset link sent to WhatsApp")
