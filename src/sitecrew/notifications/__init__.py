"""Invitation notifications for SiteCrew."""

from sitecrew.notifications.notifier import InvitationEmail, InvitationNotifier, dispatch
from sitecrew.notifications.channels import LogNotifier, MailgunNotifier, build_notifier

__all__ = [
    "InvitationEmail",
    "InvitationNotifier",
    "dispatch",
    "LogNotifier",
    "MailgunNotifier",
    "build_notifier",
]
