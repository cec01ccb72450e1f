"""
Domain exceptions raised by service functions.

Each exception carries the HTTP status and error code the API layer renders,
so routes can let them propagate to the registered exception handlers.
"""

from typing import Any, Optional


class DomainError(Exception):
    """Base exception for marketplace business-rule violations."""

    status_code: int = 400
    code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(DomainError):
    """Raised when input references missing records or breaks an invariant."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(DomainError):
    """Raised when a requested record does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class InvalidStateError(DomainError):
    """Raised when a transition is not allowed from the current state."""

    status_code = 409
    code = "INVALID_STATE"

    def __init__(self, entity: str, current: str, action: str):
        super().__init__(
            f"Cannot {action} {entity} in state '{current}'",
            details={"entity": entity, "current_state": current, "action": action},
        )
        self.entity = entity
        self.current = current
        self.action = action


class PayoutTransferError(DomainError):
    """Raised when the external transfer for a payout fails."""

    status_code = 502
    code = "PAYOUT_TRANSFER_FAILED"


class UserNotFoundError(DomainError):
    """Raised when a verified token does not match any user."""

    status_code = 401
    code = "USER_NOT_FOUND"


class UserInactiveError(DomainError):
    """Raised when the authenticated user has been deactivated."""

    status_code = 403
    code = "USER_INACTIVE"


class CandidateProtectedError(DomainError):
    """Raised when another recruiter's sourcing protection covers the candidate."""

    status_code = 409
    code = "CANDIDATE_PROTECTED"


class BillingProviderError(DomainError):
    """Raised when Stripe rejects a subscription request."""

    status_code = 502
    code = "BILLING_PROVIDER_ERROR"


class WebhookSignatureError(DomainError):
    """Raised when a webhook payload fails signature verification."""

    status_code = 401
    code = "INVALID_WEBHOOK_SIGNATURE"
