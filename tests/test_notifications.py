"""Tests for invitation email channels."""

from datetime import datetime, timezone
from urllib.parse import parse_qs

import httpx
import pytest
from structlog.testing import capture_logs

from sitecrew.core.config import Settings
from sitecrew.notifications import (
    InvitationEmail,
    InvitationNotifier,
    LogNotifier,
    MailgunNotifier,
    build_notifier,
    dispatch,
)


@pytest.fixture
def message() -> InvitationEmail:
    return InvitationEmail(
        email="sub@x.com",
        company_name="Acme Builders",
        company_role="member",
        accept_url="https://app.example.com/invitations/accept?token=abc",
        expires_at=datetime(2026, 3, 9, 9, 0, tzinfo=timezone.utc),
        project_name="Kitchen Remodel",
        project_role="contractor",
        inviter_name="Dana",
        custom_message="See you Monday",
    )


class RaisingNotifier(InvitationNotifier):
    name = "relay"

    def send(self, message):
        raise RuntimeError("smtp relay down")


def mailgun(handler) -> MailgunNotifier:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return MailgunNotifier(api_key="key-1", domain="mg.example.com", client=client)


class TestInvitationEmail:
    """Message rendering."""

    def test_subject_and_body(self, message):
        assert message.subject == "Invitation to join Acme Builders - Kitchen Remodel"
        body = message.render_text()
        assert "Dana has invited you to join Acme Builders as member (contractor)." in body
        assert message.accept_url in body
        assert "See you Monday" in body
        assert "2026-03-09" in body

    def test_dict_leaves_out_link(self, message):
        assert "accept_url" not in message.to_dict()


class TestMailgunNotifier:
    """Mailgun channel."""

    def test_sends_form(self, message):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"id": "<msg>"})

        assert mailgun(handler).send(message) is True
        assert captured["url"] == "https://api.mailgun.net/v3/mg.example.com/messages"
        assert captured["form"]["to"] == ["sub@x.com"]
        assert captured["form"]["subject"] == [message.subject]

    def test_not_configured(self, message):
        notifier = MailgunNotifier(api_key=None, domain="mg.example.com")
        assert notifier.is_configured is False
        assert notifier.send(message) is False

    def test_http_error(self, message):
        assert mailgun(lambda request: httpx.Response(500)).send(message) is False

    def test_transport_error(self, message):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        assert mailgun(handler).send(message) is False


class TestDispatch:
    """Best-effort dispatch."""

    def test_success(self, message):
        notifier = LogNotifier()
        assert dispatch(notifier, message) is True
        assert notifier.sent == [message]

    def test_failure_reported(self, message):
        notifier = MailgunNotifier(api_key=None, domain=None)
        assert dispatch(notifier, message) is False

    def test_no_channel(self, message):
        assert dispatch(None, message) is False

    def test_refused_send_logged(self, message):
        with capture_logs() as logs:
            assert dispatch(MailgunNotifier(api_key=None, domain=None), message) is False
        failures = [entry for entry in logs if entry["event"] == "Notification dispatch failed"]
        assert failures[0]["code"] == "NOTIFICATION_DISPATCH_FAILED"
        assert failures[0]["channel"] == "mailgun"

    def test_raising_channel_contained(self, message):
        with capture_logs() as logs:
            assert dispatch(RaisingNotifier(), message) is False
        raised = [entry for entry in logs if entry["event"] == "Notification dispatch raised"]
        assert raised[0]["code"] == "NOTIFICATION_DISPATCH_FAILED"
        assert raised[0]["error"] == "smtp relay down"
        assert raised[0]["error_type"] == "RuntimeError"


class TestBuildNotifier:
    """Channel selection."""

    def test_log_channel(self, test_settings):
        assert isinstance(build_notifier(test_settings), LogNotifier)

    def test_mailgun_channel(self):
        settings = Settings(notifications={"channel": "mailgun", "mailgun": {"api_key": "k", "domain": "d"}})
        notifier = build_notifier(settings)
        assert isinstance(notifier, MailgunNotifier)
        assert notifier.is_configured
