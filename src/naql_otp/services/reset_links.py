"""Password-reset links minted by Firebase Auth."""

from __future__ import annotations

import asyncio
import logging

import firebase_admin
from firebase_admin import auth, credentials, exceptions

from naql_otp.config import Settings
from naql_otp.errors import ConfigurationError, ResetLinkError
from naql_otp.otp.phone import mask_phone

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "naql-otp"


class ResetLinkService:
    """Generates reset links for accounts registered as ``<phone>@<domain>``.

    The app signs users up with a synthetic email derived from their phone
    number, so the same derivation is used to find the account here.
    """

    def __init__(
        self,
        firebase_app: firebase_admin.App,
        continue_url: str,
        email_domain: str,
    ) -> None:
        self._app = firebase_app
        self._action_settings = auth.ActionCodeSettings(
            url=continue_url, handle_code_in_app=True
        )
        self._email_domain = email_domain

    @classmethod
    def from_settings(cls, settings: Settings) -> ResetLinkService:
        """Initialise (or reuse) the Firebase app for the configured service account."""
        try:
            app = firebase_admin.get_app(FIREBASE_APP_NAME)
        except ValueError:
            try:
                cert = credentials.Certificate(settings.firebase_key)
                app = firebase_admin.initialize_app(cert, name=FIREBASE_APP_NAME)
            except ValueError as exc:
                raise ConfigurationError(f"Invalid Firebase credentials: {exc}") from exc
            logger.info("Firebase Admin initialised")
        return cls(
            app,
            continue_url=settings.reset_continue_url,
            email_domain=settings.reset_email_domain,
        )

    def email_for(self, phone_key: str) -> str:
        return f"{phone_key}@{self._email_domain}"

    async def generate(self, phone_key: str) -> str:
        """Return a password-reset link for the account behind *phone_key*.

        The Firebase SDK is blocking, so the call runs in a worker thread.

        Raises
        ------
        ResetLinkError
            ``user_not_found`` is set when no account uses the derived email.
        """
        email = self.email_for(phone_key)
        try:
            link = await asyncio.to_thread(
                auth.generate_password_reset_link,
                email,
                self._action_settings,
                app=self._app,
            )
        except auth.UserNotFoundError as exc:
            logger.info("No Firebase account for %s", mask_phone(phone_key))
            raise ResetLinkError(user_not_found=True, detail=str(exc)) from exc
        except exceptions.FirebaseError as exc:
            logger.error("Reset link generation failed for %s: %s", mask_phone(phone_key), exc)
            raise ResetLinkError(detail=str(exc)) from exc

        logger.info("Reset link generated for %s", mask_phone(phone_key))
        return link
