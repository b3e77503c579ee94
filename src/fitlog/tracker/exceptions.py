"""Tracker specific exceptions with standardized error handling."""
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class TrackerError(Exception):
    """Base exception for tracker operations."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

        super().__init__(self.message)

        # Log the error
        logger.error(f"Tracker Error [{self.error_code}]: {self.message}", extra={"details": self.details})


class GatewayError(TrackerError):
    """Remote data gateway read/write errors."""

    def __init__(self, message: str, operation: str = None, table: str = None, **kwargs):
        details = {"operation": operation, "table": table}
        details.update(kwargs)
        super().__init__(message, "GATEWAY_ERROR", details)


class AuthenticationError(TrackerError):
    """Authentication related errors."""

    def __init__(self, message: str, email: str = None):
        details = {"email": email}
        super().__init__(message, "AUTHENTICATION_ERROR", details)


class NotSignedInError(TrackerError):
    """A mutation was attempted without a signed-in user."""

    def __init__(self, operation: str = None):
        message = "No user is signed in"
        if operation:
            message = f"{message}; cannot {operation}"
        super().__init__(message, "NOT_SIGNED_IN", {"operation": operation})


class ConfigurationError(TrackerError):
    """Configuration related errors."""

    def __init__(self, message: str, config_key: str = None, config_file: str = None):
        details = {"config_key": config_key, "config_file": config_file}
        super().__init__(message, "CONFIGURATION_ERROR", details)


class ValidationError(TrackerError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: str = None, field_value: Any = None, expected_type: str = None):
        details = {
            "field_name": field_name,
            "field_value": str(field_value) if field_value is not None else None,
            "expected_type": expected_type
        }
        super().__init__(message, "VALIDATION_ERROR", details)
