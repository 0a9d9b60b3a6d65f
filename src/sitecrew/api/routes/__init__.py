"""API route modules."""

from sitecrew.api.routes import companies, health, invitations, me

__all__ = ["companies", "health", "invitations", "me"]
