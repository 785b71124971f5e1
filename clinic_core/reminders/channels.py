"""Outbound notification channels for patient reminders.

Each channel turns (destination, message) into one provider call and reports
the outcome as a SendResult. Transport problems are raised as NotificationError
subclasses; the dispatch coordinator converts both into failed outcomes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests
from django.conf import settings
from requests import Response

__all__ = [
    "NotificationError",
    "ChannelConfigurationError",
    "ChannelDeliveryError",
    "SendResult",
    "ConsoleChannel",
    "WhatsAppChannel",
    "TelegramChannel",
    "get_channel",
]

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
TELEGRAM_API_BASE = "https://api.telegram.org"
DEFAULT_TIMEOUT_SECONDS = 15.0


class NotificationError(RuntimeError):
    """Base exception for notification channel errors."""


class ChannelConfigurationError(NotificationError):
    """Raised when a channel is selected but its credentials are missing."""


class ChannelDeliveryError(NotificationError):
    """Raised when the provider cannot be reached or returns garbage."""


@dataclass(frozen=True)
class SendResult:
    ok: bool
    provider_message_id: Optional[str] = None
    error: str = ""


class BaseChannel:
    name = "base"

    def destination_for(self, patient) -> str:
        return (getattr(patient, "phone", "") or "").strip()

    def send(self, destination: str, message: str, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> SendResult:
        raise NotImplementedError


class ConsoleChannel(BaseChannel):
    """Logs the message instead of delivering it (local development, demos)."""

    name = "console"

    def destination_for(self, patient) -> str:
        phone = (getattr(patient, "phone", "") or "").strip()
        return phone or (getattr(patient, "telegram_chat_id", "") or "").strip()

    def send(self, destination: str, message: str, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> SendResult:
        logger.info("[console reminder] to=%s message=%s", destination, message)
        return SendResult(ok=True)


class HttpChannel(BaseChannel):
    """Shared session handling for HTTP providers. One attempt per send."""

    provider = "http"

    def __init__(self, *, session: Optional[requests.Session] = None) -> None:
        self._session = session or requests.Session()

    def _post(self, url: str, *, timeout: float, **kwargs) -> Response:
        try:
            return self._session.post(url, timeout=timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("%s request failed: %s", self.provider, exc)
            raise ChannelDeliveryError(f"{self.provider} request failed: {exc}") from exc

    def _json(self, response: Response) -> dict:
        try:
            data = response.json()
        except ValueError as exc:
            logger.error(
                "%s returned non-JSON response: status=%s body=%s",
                self.provider,
                response.status_code,
                response.text[:2048],
            )
            raise ChannelDeliveryError(f"{self.provider} returned an invalid response") from exc
        return data if isinstance(data, dict) else {}


class WhatsAppChannel(HttpChannel):
    """WhatsApp via the Twilio Messages REST API."""

    name = "whatsapp"
    provider = "twilio"

    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        from_number: str,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not account_sid or not auth_token or not from_number:
            raise ChannelConfigurationError("Twilio account sid, auth token and WhatsApp number must be configured")
        super().__init__(session=session)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = self._whatsapp_address(from_number)

    @staticmethod
    def _whatsapp_address(number: str) -> str:
        number = number.strip()
        return number if number.startswith("whatsapp:") else f"whatsapp:{number}"

    def send(self, destination: str, message: str, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> SendResult:
        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        response = self._post(
            url,
            timeout=timeout,
            auth=(self.account_sid, self.auth_token),
            data={
                "To": self._whatsapp_address(destination),
                "From": self.from_number,
                "Body": message,
            },
        )
        data = self._json(response)

        if response.ok:
            return SendResult(ok=True, provider_message_id=data.get("sid"))

        logger.warning("Twilio rejected message: status=%s body=%s", response.status_code, data)
        return SendResult(ok=False, error=f"Twilio error: {data.get('message') or response.status_code}")


class TelegramChannel(HttpChannel):
    """Telegram Bot API sendMessage; destination is the patient's chat id."""

    name = "telegram"
    provider = "telegram"

    def __init__(self, *, bot_token: str, session: Optional[requests.Session] = None) -> None:
        if not bot_token:
            raise ChannelConfigurationError("Telegram bot token must be configured")
        super().__init__(session=session)
        self.bot_token = bot_token

    def destination_for(self, patient) -> str:
        return (getattr(patient, "telegram_chat_id", "") or "").strip()

    def send(self, destination: str, message: str, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> SendResult:
        url = f"{TELEGRAM_API_BASE}/bot{self.bot_token}/sendMessage"
        response = self._post(url, timeout=timeout, json={"chat_id": destination, "text": message})
        data = self._json(response)

        if response.ok and data.get("ok"):
            message_id = (data.get("result") or {}).get("message_id")
            return SendResult(ok=True, provider_message_id=str(message_id) if message_id is not None else None)

        logger.warning("Telegram rejected message: status=%s body=%s", response.status_code, data)
        return SendResult(ok=False, error=f"Telegram error: {data.get('description') or response.status_code}")


def get_channel(name: Optional[str] = None) -> BaseChannel:
    """
    Build the channel selected by REMINDERS["CHANNEL"] (or `name`).
    """
    name = (name or settings.REMINDERS.get("CHANNEL") or "console").strip().lower()

    if name == "console":
        return ConsoleChannel()
    if name == "whatsapp":
        return WhatsAppChannel(
            account_sid=getattr(settings, "TWILIO_ACCOUNT_SID", ""),
            auth_token=getattr(settings, "TWILIO_AUTH_TOKEN", ""),
            from_number=getattr(settings, "TWILIO_WHATSAPP_NUMBER", ""),
        )
    if name == "telegram":
        return TelegramChannel(bot_token=getattr(settings, "TELEGRAM_BOT_TOKEN", ""))

    raise ChannelConfigurationError(f"Unknown reminder channel: {name}")
