"""Outcome notification: report model, message templates and delivery channels."""

from __future__ import annotations

import logging
from typing import Sequence

from deploy_orchestrator.framework.config import RunConfiguration
from deploy_orchestrator.notify.channels import (
    ConsoleChannel,
    NotificationChannel,
    NotificationError,
    SlackWebhookChannel,
)
from deploy_orchestrator.notify.report import RunReport, build_run_report
from deploy_orchestrator.notify.templates import NotificationMessage, format_duration, render_message


class Notifier:
    def __init__(self, channels: Sequence[NotificationChannel], *, logger: logging.Logger):
        self._channels = list(channels)
        self._logger = logger

    def notify(self, report: RunReport) -> list[str]:
        """Render and dispatch; returns the names of channels that accepted the message."""

        message = render_message(report)
        if message is None:
            self._logger.info(
                "No notification template for status=%s; nothing sent", report.status
            )
            return []

        delivered: list[str] = []
        for channel in self._channels:
            try:
                channel.send(message, report)
            except NotificationError as exc:
                self._logger.warning("Notification via %s failed: %s", channel.name, exc)
                continue
            except Exception:  # noqa: BLE001
                self._logger.exception(
                    "Notification via %s raised an unexpected error", getattr(channel, "name", channel)
                )
                continue
            delivered.append(channel.name)
        if delivered:
            self._logger.info("Notification sent (%s) via %s", message.status, ", ".join(delivered))
        return delivered


def default_channels(cfg: RunConfiguration, logger: logging.Logger) -> list[NotificationChannel]:
    channels: list[NotificationChannel] = [ConsoleChannel(logger)]
    if cfg.notify.slack_webhook_url:
        channels.append(
            SlackWebhookChannel(
                cfg.notify.slack_webhook_url,
                channel=cfg.notification_channel,
                timeout_s=cfg.notify.timeout_s,
            )
        )
    else:
        logger.info(
            "notify.slack_webhook_url not set; outcome for %s goes to the log only",
            cfg.notification_channel,
        )
    return channels


__all__ = [
    "ConsoleChannel",
    "NotificationChannel",
    "NotificationError",
    "NotificationMessage",
    "Notifier",
    "RunReport",
    "SlackWebhookChannel",
    "build_run_report",
    "default_channels",
    "format_duration",
    "render_message",
]
