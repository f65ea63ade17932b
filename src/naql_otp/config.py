"""Naql OTP relay: configuration loaded from environment."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Annotated, Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode

from naql_otp.errors import ConfigurationError


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Firebase (identity provider) ──────────────────────
    firebase_key: Annotated[dict[str, Any], NoDecode]
    reset_continue_url: str = "https://yemen-naql-server.onrender.com/reset-password"
    reset_email_domain: str = "naql.com"

    # ── Twilio WhatsApp channel ───────────────────────────
    twilio_sid: str = Field(min_length=1)
    twilio_auth: str = Field(min_length=1)
    twilio_whatsapp_from: str = "+14155238886"
    twilio_api_base_url: str = "https://api.twilio.com/2010-04-01"

    # ── OTP policy ────────────────────────────────────────
    otp_ttl_seconds: int = Field(default=600, gt=0)
    otp_max_attempts: int = Field(default=5, gt=0)
    otp_sweep_interval_seconds: float = Field(default=300, gt=0)

    # ── App ───────────────────────────────────────────────
    app_name: str = "Yemen Naql"
    environment: str = "development"
    port: int = 3000
    debug: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("firebase_key", mode="before")
    @classmethod
    def _parse_service_account(cls, value: Any) -> Any:
        """Accept the service account as a JSON string and fix its private key.

        Hosting dashboards usually store the key with literal ``\\n``
        sequences, which the Firebase SDK rejects.
        """
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError(f"FIREBASE_KEY is not valid JSON: {exc.msg}") from exc
        if not isinstance(value, dict):
            raise ValueError("FIREBASE_KEY must be a JSON object")
        private_key = value.get("private_key")
        if isinstance(private_key, str):
            value = {**value, "private_key": private_key.replace("\\n", "\n")}
        return value


def load_settings(**overrides: Any) -> Settings:
    """Build :class:`Settings`, turning validation failures into ``ConfigurationError``."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = ", ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration ({problems})") from exc


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings singleton."""
    return load_settings()
