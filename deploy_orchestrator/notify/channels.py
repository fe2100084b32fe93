from __future__ import annotations

import logging
from typing import Protocol

import requests

from deploy_orchestrator.notify.report import RunReport
from deploy_orchestrator.notify.templates import NotificationMessage


class NotificationError(RuntimeError):
    """Dispatch to a channel failed. Never changes the run verdict."""


class NotificationChannel(Protocol):
    name: str

    def send(self, message: NotificationMessage, report: RunReport) -> None:
        ...


class ConsoleChannel:
    name = "console"

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def send(self, message: NotificationMessage, report: RunReport) -> None:
        level = logging.INFO if message.status == "success" else logging.WARNING
        self._logger.log(level, "%s\n%s", message.title, message.text)


class SlackWebhookChannel:
    name = "slack"

    def __init__(
        self,
        webhook_url: str,
        *,
        channel: str | None = None,
        timeout_s: float = 10.0,
        session: requests.Session | None = None,
    ):
        if not isinstance(webhook_url, str) or not webhook_url.strip():
            raise ValueError("webhook_url must be a non-empty string")
        self._webhook_url = webhook_url.strip()
        self._channel = channel
        self._timeout_s = timeout_s
        self._session = session or requests.Session()

    def payload(self, message: NotificationMessage) -> dict[str, object]:
        body: dict[str, object] = {
            "text": message.title,
            "attachments": [{"color": message.color, "title": message.title, "text": message.text}],
        }
        if self._channel:
            body["channel"] = self._channel
        return body

    def send(self, message: NotificationMessage, report: RunReport) -> None:
        try:
            response = self._session.post(
                self._webhook_url, json=self.payload(message), timeout=self._timeout_s
            )
        except requests.exceptions.RequestException as exc:
            raise NotificationError(f"Slack webhook unreachable: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise NotificationError(
                f"Slack webhook rejected message (status={response.status_code}): {response.text[:200]}"
            )
