"""Invitation email channel implementations."""

from __future__ import annotations

import httpx
import structlog

from sitecrew.core.config import NotifierType, Settings
from sitecrew.notifications.notifier import InvitationEmail, InvitationNotifier

logger = structlog.get_logger()


class MailgunNotifier(InvitationNotifier):
    """Mailgun HTTP API channel."""

    name = "mailgun"

    def __init__(
        self,
        api_key: str | None,
        domain: str | None,
        from_email: str = "noreply@sitecrew.app",
        base_url: str = "https://api.mailgun.net/v3",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        """
        Initialize Mailgun notifier.

        Args:
            api_key: Mailgun API key
            domain: Sending domain
            from_email: Sender address
            base_url: Mailgun API base URL
            timeout: Request timeout in seconds
            client: Optional preconfigured httpx client
        """
        self.api_key = api_key
        self.domain = domain
        self.from_email = from_email
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = client
        self.logger = logger.bind(channel="mailgun")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.domain)

    def send(self, message: InvitationEmail) -> bool:
        """Send invitation email through Mailgun."""
        if not self.is_configured:
            self.logger.warning(
                "Mailgun not configured, skipping invitation email",
                missing_api_key=not self.api_key,
                missing_domain=not self.domain,
            )
            return False

        data = {
            "from": self.from_email,
            "to": message.email,
            "subject": message.subject,
            "text": message.render_text(),
        }
        url = f"{self.base_url}/{self.domain}/messages"

        try:
            if self.client is not None:
                response = self.client.post(url, data=data, auth=("api", self.api_key), timeout=self.timeout)
            else:
                response = httpx.post(url, data=data, auth=("api", self.api_key), timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.error("Failed to send invitation email", error=str(e), **message.to_dict())
            return False

        self.logger.info("Invitation email sent", **message.to_dict())
        return True


class LogNotifier(InvitationNotifier):
    """Logs invitations instead of sending them. Used in development and tests."""

    name = "log"

    def __init__(self) -> None:
        self.sent: list[InvitationEmail] = []
        self.logger = logger.bind(channel="log")

    def send(self, message: InvitationEmail) -> bool:
        self.sent.append(message)
        self.logger.info("Invitation email", **message.to_dict())
        return True


def build_notifier(settings: Settings) -> InvitationNotifier:
    """Create the configured channel."""
    config = settings.notifications
    if config.channel == NotifierType.MAILGUN:
        return MailgunNotifier(
            api_key=config.mailgun.api_key,
            domain=config.mailgun.domain,
            from_email=config.mailgun.from_email,
            base_url=config.mailgun.base_url,
            timeout=config.timeout_seconds,
        )
    return LogNotifier()
