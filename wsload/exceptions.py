"""
Exception hierarchy for wsload.

Configuration problems are fatal and raised before any connection opens.
Connection-level errors never leave the virtual user that hit them; they are
recorded as ConnectionErrored events and reflected in the runner outcome.
"""

from typing import Any, Dict, Optional


class WsLoadError(Exception):
    """
    Base exception for all wsload errors.

    Attributes:
        message: Human-readable error message
        error_code: Programmatic error code
        details: Additional context
        original_exception: Wrapped exception, if any
    """

    def __init__(
        self,
        message: str,
        error_code: str = "WSLOAD_ERROR",
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.original_exception = original_exception

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "original_error": str(self.original_exception) if self.original_exception else None,
        }


class ConfigError(WsLoadError):
    """Invalid scenario parameters. Aborts the run before any connection opens."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("error_code", "CONFIG_ERROR")
        super().__init__(message, **kwargs)


class ConnectError(WsLoadError):
    """The WebSocket handshake failed (refused, rejected, timed out)."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("error_code", "CONNECT_ERROR")
        super().__init__(message, **kwargs)


class TransportError(WsLoadError):
    """Mid-session transport failure (abnormal close, write failure)."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("error_code", "TRANSPORT_ERROR")
        super().__init__(message, **kwargs)


class CancellationTimeout(WsLoadError):
    """A runner did not finish within its grace period and was terminated."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("error_code", "CANCELLATION_TIMEOUT")
        super().__init__(message, **kwargs)
