"""
Outbound webhook delivery (httpx) and the webhook notification step.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Tuple

import httpx

from .actions import ActionError, BaseAction, ValidationError, register_action


DEFAULT_TIMEOUT_SECONDS = 10.0


def post_json(
    url: str,
    body: str,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Response:
    """POST an already-encoded JSON body. Raises httpx.HTTPError on transport errors."""
    with httpx.Client(timeout=timeout, transport=transport) as client:
        return client.post(
            url,
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/json; charset=utf-8"},
        )


class WebhookServiceType(Enum):
    CUSTOM = "custom"
    DISCORD = "discord"
    SLACK = "slack"
    TEAMS = "teams"
    GOOGLE_CHAT = "google_chat"


_SERVICE_NAMES = {
    WebhookServiceType.CUSTOM: "Custom",
    WebhookServiceType.DISCORD: "Discord",
    WebhookServiceType.SLACK: "Slack",
    WebhookServiceType.TEAMS: "Teams",
    WebhookServiceType.GOOGLE_CHAT: "Google Chat",
}


@register_action
@dataclass
class WebhookAction(BaseAction):
    kind: ClassVar[str] = "webhook"
    template_fields: ClassVar[Tuple[str, ...]] = ("webhook_url", "message", "custom_payload")

    webhook_url: str = ""
    service_type: WebhookServiceType = WebhookServiceType.GOOGLE_CHAT
    message: str = ""
    custom_payload: str = ""
    timeout_ms: int = 10000

    @property
    def name(self) -> str:
        return "Webhook notification"

    @property
    def description(self) -> str:
        preview = self.message if len(self.message) <= 30 else self.message[:30] + "..."
        return f"Webhook ({_SERVICE_NAMES[self.service_type]}): {preview}"

    def check(self) -> None:
        if not self.webhook_url.strip():
            raise ValidationError("Webhook URL is not specified")
        if self.timeout_ms <= 0:
            raise ValidationError("Timeout must be positive")

    def build_payload(self) -> str:
        if self.service_type == WebhookServiceType.DISCORD:
            return json.dumps({"content": self.message}, ensure_ascii=False)
        if self.service_type == WebhookServiceType.CUSTOM:
            if self.custom_payload.strip():
                return self.custom_payload
            return json.dumps({"message": self.message}, ensure_ascii=False)
        return json.dumps({"text": self.message}, ensure_ascii=False)

    def run(self) -> None:
        payload = self.build_payload()
        self.log_info(f"Sending webhook ({_SERVICE_NAMES[self.service_type]})")
        self.log_debug(f"Payload: {payload}")
        try:
            response = post_json(self.webhook_url, payload, timeout=self.timeout_ms / 1000.0)
        except httpx.TimeoutException as e:
            raise ActionError(f"Webhook timed out: {e}")
        except httpx.HTTPError as e:
            raise ActionError(f"Webhook request failed: {e}")
        if not response.is_success:
            self.log_debug(f"Response: {response.text}")
            raise ActionError(f"Webhook failed: HTTP {response.status_code} {response.reason_phrase}")
        self.log_info(f"Webhook sent: HTTP {response.status_code}")
