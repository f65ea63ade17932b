"""Error taxonomy shared by the relay's services and HTTP layer."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing or malformed at startup."""


class RelayError(Exception):
    """Base class for failures that are reported back to the caller.

    ``user_message`` is what ends up in the ``error`` field of the JSON
    response; ``status_code`` is the HTTP status used for it.
    """

    status_code: int = 500
    default_message: str = "Something went wrong"

    def __init__(self, user_message: str | None = None) -> None:
        self.user_message = user_message or self.default_message
        super().__init__(self.user_message)


class RequestValidationError(RelayError):
    """The caller sent a missing or malformed phone number or code."""

    status_code = 400
    default_message = "Invalid request"


class DeliveryError(RelayError):
    """The messaging channel refused or failed to deliver a message.

    Parameters
    ----------
    code:
        Provider error code (Twilio's numeric ``code`` field), or ``None``
        when the request never got a provider response.
    detail:
        Provider-side message, kept for logs only.
    """

    status_code = 500

    # Known Twilio error codes → user-facing text
    KNOWN_CODES = {
        21211: "Invalid phone number",
        21408: "The service is not enabled for this phone number",
    }

    def __init__(
        self,
        code: int | None = None,
        detail: str = "",
        fallback: str = "Failed to send the message",
    ) -> None:
        self.code = code
        self.detail = detail
        super().__init__(self.KNOWN_CODES.get(code, fallback))


class ResetLinkError(RelayError):
    """The identity provider could not mint a password-reset link."""

    status_code = 500
    default_message = "Failed to send the reset link"

    def __init__(self, user_not_found: bool = False, detail: str = "") -> None:
        self.user_not_found = user_not_found
        self.detail = detail
        super().__init__(
            "No account is linked to this phone number" if user_not_found else None
        )
