"""FastAPI dependency providers for the collaborators stored on ``app.state``."""

from __future__ import annotations

from fastapi import Request

from naql_otp.config import Settings
from naql_otp.otp.store import OTPStore
from naql_otp.services.reset_links import ResetLinkService
from naql_otp.services.whatsapp import WhatsAppSender


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_otp_store(request: Request) -> OTPStore:
    return request.app.state.otp_store


def get_sender(request: Request) -> WhatsAppSender:
    return request.app.state.sender


def get_reset_links(request: Request) -> ResetLinkService:
    return request.app.state.reset_links
