import logging

import pytest
import requests

from stagekit import Aborted, Failure, Success, Unstable

from deploy_orchestrator.notify import (
    ConsoleChannel,
    NotificationError,
    Notifier,
    RunReport,
    SlackWebhookChannel,
    format_duration,
    render_message,
)

IMAGE = "123456789012.dkr.ecr.ap-south-1.amazonaws.com/springboot-app:42"


def _report(verdict, **kwargs) -> RunReport:
    values = {
        "job_name": "springboot-deploy",
        "run_number": 42,
        "verdict": verdict,
        "duration_s": 125.0,
        "revision": "abc1234",
        "image_ref": IMAGE,
        "stage_statuses": (("Checkout", "success"), ("Build", "success")),
        "completed_stages": ("Checkout", "Build"),
    }
    values.update(kwargs)
    return RunReport(**values)


def _logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG)
    logger.propagate = True
    return logger


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = "ok"):
        self.status_code = status_code
        self.text = text


class FakeSession:
    def __init__(self, response=None, error: Exception | None = None):
        self.response = response or FakeResponse()
        self.error = error
        self.posts: list[dict] = []

    def post(self, url, json=None, timeout=None):
        self.posts.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


class BrokenChannel:
    name = "broken"

    def send(self, message, report):
        raise NotificationError("webhook unreachable")


class ExplodingChannel:
    name = "exploding"

    def send(self, message, report):
        raise ValueError("channel exploded")


class CapturingChannel:
    name = "capture"

    def __init__(self):
        self.messages = []

    def send(self, message, report):
        self.messages.append(message)


def test_success_message_contains_image_reference():
    message = render_message(_report(Success()))

    assert message is not None
    assert message.status == "success"
    assert message.color == "good"
    assert IMAGE in message.text
    assert "springboot-deploy #42" in message.title
    assert "Duration: 2m 05s" in message.text


def test_failure_message_names_failing_stage_and_reason():
    report = _report(
        Failure("build", stage="Build", detail="mvn exited with status 1"),
        failed_stage="Build",
        stage_statuses=(("Checkout", "success"), ("Build", "failure"), ("ContainerBuild", "skipped")),
    )

    message = render_message(report)

    assert message is not None
    assert message.color == "danger"
    assert "Failed stage: Build" in message.text
    assert "Reason: build" in message.text
    assert "Detail: mvn exited with status 1" in message.text
    assert "ContainerBuild=skipped" in message.text


def test_unstable_message_uses_warning_template():
    message = render_message(_report(Unstable("no running pod matched app=springboot-app")))

    assert message is not None
    assert message.status == "unstable"
    assert message.color == "warning"
    assert "no running pod matched" in message.text


def test_aborted_has_no_template():
    assert render_message(_report(Aborted("terminated"))) is None


def test_notifier_sends_nothing_for_aborted(caplog):
    channel = CapturingChannel()
    notifier = Notifier([channel], logger=_logger("test.notify.aborted"))

    with caplog.at_level(logging.INFO, logger="test.notify.aborted"):
        delivered = notifier.notify(_report(Aborted()))

    assert delivered == []
    assert channel.messages == []
    assert "nothing sent" in caplog.text


def test_notification_failure_is_logged_and_swallowed(caplog):
    good = CapturingChannel()
    notifier = Notifier([BrokenChannel(), good], logger=_logger("test.notify.broken"))

    with caplog.at_level(logging.WARNING, logger="test.notify.broken"):
        delivered = notifier.notify(_report(Success()))

    assert delivered == ["capture"]
    assert len(good.messages) == 1
    assert "Notification via broken failed: webhook unreachable" in caplog.text


def test_unexpected_channel_error_is_logged_and_next_channel_still_runs(caplog):
    good = CapturingChannel()
    notifier = Notifier([ExplodingChannel(), good], logger=_logger("test.notify.exploding"))

    with caplog.at_level(logging.ERROR, logger="test.notify.exploding"):
        delivered = notifier.notify(_report(Failure("build", stage="Build")))

    assert delivered == ["capture"]
    assert len(good.messages) == 1
    assert "Notification via exploding raised an unexpected error" in caplog.text
    assert "channel exploded" in caplog.text


def test_console_channel_writes_to_log(caplog):
    logger = _logger("test.notify.console")
    message = render_message(_report(Failure("deploy", stage="Deploy"), failed_stage="Deploy"))

    with caplog.at_level(logging.INFO, logger="test.notify.console"):
        ConsoleChannel(logger).send(message, _report(Success()))

    assert "FAILURE: springboot-deploy #42" in caplog.text
    assert caplog.records[0].levelno == logging.WARNING


def test_slack_channel_posts_attachment_payload():
    session = FakeSession()
    channel = SlackWebhookChannel(
        "https://hooks.slack.com/services/T/B/X", channel="#deployments", timeout_s=5, session=session
    )
    message = render_message(_report(Success()))

    channel.send(message, _report(Success()))

    (post,) = session.posts
    assert post["url"] == "https://hooks.slack.com/services/T/B/X"
    assert post["timeout"] == 5
    assert post["json"]["channel"] == "#deployments"
    attachment = post["json"]["attachments"][0]
    assert attachment["color"] == "good"
    assert IMAGE in attachment["text"]


def test_slack_channel_raises_notification_error_on_rejection_or_network_error():
    message = render_message(_report(Success()))

    rejected = SlackWebhookChannel(
        "https://hooks.slack.com/x", session=FakeSession(FakeResponse(404, "no_service"))
    )
    with pytest.raises(NotificationError, match="status=404"):
        rejected.send(message, _report(Success()))

    offline = SlackWebhookChannel(
        "https://hooks.slack.com/x", session=FakeSession(error=requests.exceptions.ConnectionError("dns"))
    )
    with pytest.raises(NotificationError, match="unreachable"):
        offline.send(message, _report(Success()))


def test_report_to_dict_lists_stage_statuses():
    payload = _report(Failure("timeout", stage="Deploy"), failed_stage="Deploy").to_dict()

    assert payload["status"] == "failure"
    assert payload["reason"] == "timeout"
    assert payload["failed_stage"] == "Deploy"
    assert payload["stages"][0] == {"name": "Checkout", "status": "success"}


@pytest.mark.parametrize("seconds,expected", [(0, "0s"), (59.4, "59s"), (61, "1m 01s"), (3725, "1h 02m 05s")])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
