"""WhatsApp delivery through the Twilio Messages REST API."""

from __future__ import annotations

import logging

import httpx

from naql_otp.config import Settings
from naql_otp.errors import DeliveryError
from naql_otp.otp.phone import mask_phone

logger = logging.getLogger(__name__)


def otp_message(app_name: str, code: str, ttl_minutes: int) -> str:
    """Body of the verification-code message."""
    return (
        f"🔐 Your {app_name} verification code is: {code}\n\n"
        f"⏰ This code is valid for {ttl_minutes} minutes."
    )


def reset_link_message(app_name: str, link: str) -> str:
    """Body of the password-reset message."""
    return (
        f"🔐 To reset your {app_name} password, open the link below:\n{link}\n\n"
        "⏰ The link is valid for 24 hours."
    )


class WhatsAppSender:
    """Sends WhatsApp text messages from a single Twilio sender number.

    Parameters
    ----------
    account_sid / auth_token:
        Twilio credentials, used for HTTP basic auth.
    from_number:
        The WhatsApp-enabled sender, in E.164 form without the
        ``whatsapp:`` prefix.
    base_url:
        Twilio API root; overridable for tests.
    transport:
        Optional ``httpx`` transport (tests pass an ``httpx.MockTransport``).
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        base_url: str = "https://api.twilio.com/2010-04-01",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._from = from_number
        self._messages_url = f"{base_url.rstrip('/')}/Accounts/{account_sid}/Messages.json"
        self._client = httpx.AsyncClient(
            auth=(account_sid, auth_token),
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> WhatsAppSender:
        return cls(
            account_sid=settings.twilio_sid,
            auth_token=settings.twilio_auth,
            from_number=settings.twilio_whatsapp_from,
            base_url=settings.twilio_api_base_url,
        )

    async def send(self, to_phone: str, body: str, fallback_error: str | None = None) -> str:
        """Deliver *body* to *to_phone* and return the Twilio message SID.

        Raises
        ------
        DeliveryError
            If Twilio rejects the message or cannot be reached.
        """
        payload = {
            "From": f"whatsapp:{self._from}",
            "To": f"whatsapp:{to_phone}",
            "Body": body,
        }
        extra = {"fallback": fallback_error} if fallback_error else {}

        try:
            resp = await self._client.post(self._messages_url, data=payload)
        except httpx.HTTPError as exc:
            logger.error("WhatsApp send to %s failed: %s", mask_phone(to_phone), exc)
            raise DeliveryError(detail=str(exc), **extra) from exc

        if resp.is_success:
            sid = _parse_sid(resp)
            logger.info("WhatsApp message %s sent to %s", sid, mask_phone(to_phone))
            return sid

        code, detail = _parse_error(resp)
        logger.error(
            "WhatsApp send to %s rejected: %s %s (code %s)",
            mask_phone(to_phone),
            resp.status_code,
            detail,
            code,
        )
        raise DeliveryError(code=code, detail=detail, **extra)

    async def aclose(self) -> None:
        await self._client.aclose()


def _parse_sid(resp: httpx.Response) -> str:
    """Message SID from a success response; empty if the body is not JSON."""
    try:
        return resp.json().get("sid", "")
    except ValueError:
        logger.warning("Twilio accepted the message but returned a non-JSON body")
        return ""


def _parse_error(resp: httpx.Response) -> tuple[int | None, str]:
    """Pull Twilio's ``code`` and ``message`` out of an error response."""
    try:
        data = resp.json()
    except ValueError:
        return None, resp.text
    code = data.get("code")
    return (code if isinstance(code, int) else None), data.get("message", resp.text)
