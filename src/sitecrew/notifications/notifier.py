"""Invitation notification dispatch."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from sitecrew.core.exceptions import NotificationDispatchFailed
from sitecrew.core.utils import format_iso

logger = structlog.get_logger()


@dataclass
class InvitationEmail:
    """Everything needed to render one invitation email."""
    email: str
    company_name: str
    company_role: str
    accept_url: str
    expires_at: datetime
    project_name: str | None = None
    project_role: str | None = None
    inviter_name: str | None = None
    custom_message: str | None = None

    @property
    def subject(self) -> str:
        if self.project_name:
            return f"Invitation to join {self.company_name} - {self.project_name}"
        return f"Invitation to join {self.company_name}"

    @property
    def role_display(self) -> str:
        if self.project_role:
            return f"{self.company_role} ({self.project_role})"
        return self.company_role

    def render_text(self) -> str:
        lines = [
            "Hi there,",
            "",
            f"{self.inviter_name or 'A teammate'} has invited you to join "
            f"{self.company_name} as {self.role_display}.",
        ]
        if self.custom_message:
            lines += ["", f'Personal message: "{self.custom_message}"']
        if self.project_name:
            lines += ["", f"Project: {self.project_name}"]
        lines += [
            "",
            f"Accept your invitation: {self.accept_url}",
            "",
            f"This invitation expires on {self.expires_at:%Y-%m-%d}.",
        ]
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        # accept_url carries the token and is left out on purpose
        return {
            "email": self.email,
            "company_name": self.company_name,
            "project_name": self.project_name,
            "role": self.role_display,
            "expires_at": format_iso(self.expires_at),
        }


class InvitationNotifier(ABC):
    """Abstract base class for invitation email channels."""

    name: str = "base"

    @abstractmethod
    def send(self, message: InvitationEmail) -> bool:
        """Send an invitation email. Returns False when nothing was delivered."""
        pass


def dispatch(notifier: InvitationNotifier | None, message: InvitationEmail) -> bool:
    """
    Best-effort delivery.

    A failed, refused or raising send is logged as ``NotificationDispatchFailed``
    and reported as False; it never propagates to the caller.
    """
    if notifier is None:
        return False
    try:
        sent = notifier.send(message)
    except Exception as e:
        logger.warning(
            "Notification dispatch raised",
            code=NotificationDispatchFailed.code,
            channel=notifier.name,
            email=message.email,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False
    if not sent:
        logger.warning(
            "Notification dispatch failed",
            code=NotificationDispatchFailed.code,
            channel=notifier.name,
            email=message.email,
        )
    return bool(sent)
