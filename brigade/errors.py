"""
brigade.errors — Error taxonomy
================================

Services raise these; the approval workflow turns them into ``rejected``
outcomes and the cogs render them as ephemeral replies.  Each class carries
a stable ``reason_code`` that collaborators can switch on.
"""

from __future__ import annotations


class BrigadeError(Exception):
    reason_code = "error"


class ValidationError(BrigadeError):
    """Missing or out-of-range input.  Terminal, no side effects."""

    reason_code = "validation_error"


class PermissionDenied(BrigadeError):
    """Actor's tier does not grant the capability.  Terminal, no side effects."""

    reason_code = "permission_denied"


class RateLimitExceeded(BrigadeError):
    reason_code = "rate_limited"

    def __init__(self, message: str, *, retry_after: float, count: int = 0) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.count = count


class ConfigurationError(BrigadeError):
    """A required collaborator (e.g. the review channel) is not available."""

    reason_code = "configuration_error"


class ExternalServiceError(BrigadeError):
    """Storage or notification delivery failed."""

    reason_code = "external_service_error"


class OperatorNotFound(BrigadeError):
    reason_code = "operator_not_found"


class PromotionBlocked(BrigadeError):
    """Promotion refused by the rank rules (locked, max rank, not eligible)."""

    reason_code = "promotion_blocked"

    def __init__(self, message: str, *, rule: str) -> None:
        super().__init__(message)
        self.rule = rule
