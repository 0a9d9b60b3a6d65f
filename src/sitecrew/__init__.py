"""SiteCrew: multi-tenant authorization and team invitations."""

__version__ = "0.1.0"
