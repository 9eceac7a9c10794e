"""Custom exceptions for TeleGuard.

All TeleGuard exceptions inherit from TeleGuardException and carry a
machine-readable code plus a details map for API responses and audit.
"""

from typing import Any, Dict, Optional


class TeleGuardException(Exception):
    """Base exception for all TeleGuard errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
        retryable: Whether the caller may safely retry the operation
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: str = "TELEGUARD_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class ConfigurationError(TeleGuardException):
    """Raised when static configuration is invalid or missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class ConfigUnavailableError(TeleGuardException):
    """Raised when the system config store cannot be read.

    Callers must treat this as "no automated action".
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if key is not None:
            details["key"] = key
        super().__init__(message, code="CONFIG_UNAVAILABLE", details=details)


class InvalidEventError(TeleGuardException):
    """Raised when an incoming event is missing required fields."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="INVALID_EVENT", details=details)


class TransientScoringError(TeleGuardException):
    """Raised by the inference adapter on transport or payload failure.

    Never leaves the scoring layer; the heuristic takes over.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        provider: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["provider"] = provider
        super().__init__(message, code="SCORING_UNAVAILABLE", details=details)


class PersistenceConflictError(TeleGuardException):
    """Raised when the action + status pair could not be written.

    The threat is left in `analyzing`; the whole response may be retried.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        threat_id: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["threat_id"] = threat_id
        super().__init__(message, code="PERSISTENCE_CONFLICT", details=details)


class ThreatNotFoundError(TeleGuardException):
    """Raised when a threat id does not exist in the store."""

    def __init__(self, threat_id: str):
        super().__init__(
            f"Threat not found: {threat_id}",
            code="THREAT_NOT_FOUND",
            details={"threat_id": threat_id},
        )


class OperatorActionError(TeleGuardException):
    """Raised when a manual operator action fails validation."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="OPERATOR_ACTION_ERROR", details=details)


class AuditError(TeleGuardException):
    """Raised when audit logging fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="AUDIT_ERROR", details=details)
