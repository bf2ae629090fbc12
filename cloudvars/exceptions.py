"""Exceptions raised by the cloud variable client."""


class CloudVarsError(Exception):
    """Base exception for all cloudvars errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransportUnavailableError(CloudVarsError):
    """Raised when a transport handle cannot be constructed.

    The connection manager treats this as a permanent failure for the
    current attempt and does not schedule a retry.
    """

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message, {"url": url} if url else {})
        self.url = url


class MalformedFrameError(CloudVarsError, ValueError):
    """Raised when an inbound frame is not a JSON object."""

    def __init__(self, frame: str, reason: str):
        super().__init__(f"Malformed frame ({reason}): {frame[:100]!r}", {"frame": frame})
        self.frame = frame
        self.reason = reason


class ConfigError(CloudVarsError):
    """Raised when a configuration file cannot be interpreted."""
