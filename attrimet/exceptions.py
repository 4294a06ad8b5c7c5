"""Exception hierarchy for the attribution engine."""

from typing import Any, Dict, Optional


class AttributionError(Exception):
    """
    Base exception for attribution errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional error details
    """

    def __init__(
        self,
        message: str,
        error_code: str = "ATTR_000",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class SessionFinalizedError(AttributionError):
    """Raised when a touchpoint arrives for a session that already converted."""

    def __init__(self, session_id: str):
        super().__init__(
            f"Session {session_id} is already finalized",
            error_code="ATTR_409",
            details={"session_id": session_id},
        )
        self.session_id = session_id


class ConfigurationError(AttributionError):
    """Raised for invalid engine configuration."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="ATTR_400", details=details)
