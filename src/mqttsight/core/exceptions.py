"""
Custom exceptions for MQTT Sight.

Provides structured error handling with process exit codes and error
details for operator-facing reporting.
"""

from typing import Any, Dict, Optional


class MqttSightException(Exception):
    """Base exception for MQTT Sight."""

    def __init__(
        self,
        message: str,
        exit_code: int = 1,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(MqttSightException):
    """Raised when settings or CLI arguments are invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            exit_code=1,
            error_code="configuration_error",
            details=details,
        )


class TransportError(MqttSightException):
    """Raised when the broker connection fails."""

    def __init__(
        self,
        message: str,
        error_code: str = "transport_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            exit_code=1,
            error_code=error_code,
            details=details,
        )


class ConnectError(TransportError):
    """Raised when the broker cannot be reached or refuses the connection."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message=message, error_code="connect_error", details=details)


class SubscribeError(TransportError):
    """Raised when the broker rejects the subscription."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message=message, error_code="subscribe_error", details=details)
