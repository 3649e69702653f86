from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from ..config import Settings
from ..domain.errors import ConfigurationError
from ..domain.notifications import GatewayResult, NotificationRequest

logger = logging.getLogger(__name__)


class NotificationGateway(Protocol):
    def check_ready(self) -> None:
        """Raise ConfigurationError if the gateway cannot send at all."""
        ...

    async def send(self, request: NotificationRequest) -> GatewayResult: ...


class ResendGateway:
    """Sends email through the Resend HTTP API. Never raises for delivery failures."""

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResendGateway":
        return cls(
            api_key=settings.resend_api_key,
            sender=settings.sender_email,
            api_url=settings.resend_api_url,
            timeout=settings.gateway_timeout_seconds,
        )

    def check_ready(self) -> None:
        if not self.api_key:
            raise ConfigurationError("RESEND_API_KEY is not configured")

    async def send(self, request: NotificationRequest) -> GatewayResult:
        self.check_ready()
        payload = {
            "from": self.sender,
            "to": [request.recipient],
            "subject": request.subject,
            "html": request.body,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            return GatewayResult(error=f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__)

        if response.is_error:
            return GatewayResult(error=_provider_error(response))
        try:
            body = response.json()
        except ValueError:
            body = None
        message_id = body.get("id") if isinstance(body, dict) else None
        if not message_id:
            return GatewayResult(error="provider did not return a message id")
        return GatewayResult(message_id=str(message_id))


def _provider_error(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return f"HTTP {response.status_code}: {body['message']}"
    return f"HTTP {response.status_code}"
