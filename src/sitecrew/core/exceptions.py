"""Custom exceptions for SiteCrew."""

from typing import Any


class SiteCrewError(Exception):
    """Base exception for all SiteCrew errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to an error envelope."""
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
        }


class ConfigurationError(SiteCrewError):
    """Raised when there's a configuration error."""

    code = "CONFIGURATION_ERROR"


class ValidationError(SiteCrewError):
    """Raised when request input is invalid."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.field = field
        super().__init__(message, details)


class NotFoundError(SiteCrewError):
    """Raised when a company, project, user or invitation does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message, details)


# ============================================================================
# Access errors
# ============================================================================

class Unauthorized(SiteCrewError):
    """Caller identity is missing or cannot be resolved."""

    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(SiteCrewError):
    """Caller is authenticated but lacks the required company or project role."""

    code = "FORBIDDEN"
    status_code = 403

    def __init__(
        self,
        message: str = "You do not have access to this resource",
        permission: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        # The failing permission goes to audit logs, not to the end user.
        self.permission = permission
        super().__init__(message, details)


# ============================================================================
# Invitation and seat outcomes
# ============================================================================

class DuplicatePending(SiteCrewError):
    """A pending invitation already exists for the same target."""

    code = "INVITATION_EXISTS"
    status_code = 409

    def __init__(
        self,
        message: str = "Pending invitation already exists for this email",
        invitation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.invitation_id = invitation_id
        super().__init__(message, details)


class AlreadyMember(SiteCrewError):
    """The invited user already holds the requested membership."""

    code = "USER_ALREADY_MEMBER"
    status_code = 409


class InvalidState(SiteCrewError):
    """The invitation is not in a state that allows the operation."""

    code = "INVALID_STATE"
    status_code = 409

    def __init__(
        self,
        message: str,
        status: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.status = status
        super().__init__(message, details)


class TokenNotFound(SiteCrewError):
    """No invitation matches the presented token."""

    code = "INVITATION_NOT_FOUND"
    status_code = 404

    def __init__(self, message: str = "Invitation not found") -> None:
        super().__init__(message)


class InvitationExpired(SiteCrewError):
    """The invitation's expiry time has passed."""

    code = "INVITATION_EXPIRED"
    status_code = 410

    def __init__(self, message: str = "Invitation has expired") -> None:
        super().__init__(message)


class InvitationAlreadyResolved(SiteCrewError):
    """The invitation was already accepted, declined or cancelled."""

    code = "INVITATION_INVALID"
    status_code = 409

    def __init__(
        self,
        message: str = "Invitation is no longer valid",
        status: str | None = None,
    ) -> None:
        self.status = status
        super().__init__(message)


class EmailMismatch(SiteCrewError):
    """The accepting identity's email differs from the invited address."""

    code = "EMAIL_MISMATCH"
    status_code = 403

    def __init__(
        self,
        message: str = "This invitation was sent to a different email address",
    ) -> None:
        super().__init__(message)


class CapacityExceeded(SiteCrewError):
    """The company has no free subscription seat."""

    code = "SEAT_LIMIT_EXCEEDED"
    status_code = 402

    def __init__(
        self,
        message: str,
        company_id: str | None = None,
        max_seats: int | None = None,
        used_seats: int | None = None,
    ) -> None:
        self.company_id = company_id
        self.max_seats = max_seats
        self.used_seats = used_seats
        super().__init__(
            message,
            {"max_seats": max_seats, "used_seats": used_seats},
        )


class SubscriptionInactive(SiteCrewError):
    """The company subscription does not allow new members."""

    code = "SUBSCRIPTION_INACTIVE"
    status_code = 402


class InvitationLimitExceeded(SiteCrewError):
    """Too many pending invitations for one company."""

    code = "INVITATION_LIMIT_EXCEEDED"
    status_code = 429


# ============================================================================
# Infrastructure errors
# ============================================================================

class StoreUnavailable(SiteCrewError):
    """Transaction or connectivity failure against the tenancy store."""

    code = "STORE_UNAVAILABLE"
    status_code = 503
    retryable = True

    def __init__(
        self,
        message: str = "Tenancy store unavailable",
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(message, details)


class NotificationDispatchFailed(SiteCrewError):
    """An invitation email could not be delivered."""

    code = "NOTIFICATION_DISPATCH_FAILED"
    status_code = 502

    def __init__(
        self,
        message: str,
        channel: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.channel = channel
        super().__init__(message, details)


class RetryExhaustedError(SiteCrewError):
    """Raised when all retry attempts are exhausted."""

    code = "RETRY_EXHAUSTED"
    status_code = 503

    def __init__(
        self,
        message: str,
        attempts: int | None = None,
        last_error: Exception | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message, details)


# Outcomes expected on the accept/decline flow; logged at info, never as errors.
BUSINESS_OUTCOMES: tuple[type[SiteCrewError], ...] = (
    TokenNotFound,
    InvitationExpired,
    InvitationAlreadyResolved,
    EmailMismatch,
    CapacityExceeded,
    DuplicatePending,
    AlreadyMember,
    InvalidState,
)
