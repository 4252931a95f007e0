"""
Error types for the Assuan client.

Every failure the library detects is raised to the caller of the operation
that detected it. Nothing is retried or recovered internally.

Hierarchy:
- AssuanError
  - TransportError: connection-level failures, surfaced on the next call
    - ClientClosedError: operation attempted on a closed client
  - FramingError: malformed percent-escape in a raw data payload
  - InvalidRequestError: a request that would break line framing
  - UnknownResponseType: a line that matches no response prefix
  - ResponseParseError: a known prefix whose payload is malformed
  - ResponseTypeMismatch: an accessor used on a differently typed line
"""

from __future__ import annotations

from typing import Any


class AssuanError(Exception):
    """
    Base exception for Assuan client errors.

    Attributes:
        message: Human-readable error message.
        details: Optional structured details (offending line, socket path...).
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an Assuan error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )


class TransportError(AssuanError):
    """Raised for socket-level failures (connect, reset, unexpected EOF)."""

    pass


class ClientClosedError(TransportError):
    """Raised when an operation is attempted after close()."""

    pass


class FramingError(AssuanError):
    """Raised when a raw data payload cannot be percent-decoded."""

    pass


class InvalidRequestError(AssuanError, ValueError):
    """
    Raised when a request cannot be encoded as a single line.

    Also a ValueError, since it always stems from a bad argument.
    """

    pass


class UnknownResponseType(AssuanError):
    """Raised when an inbound line starts with no recognized prefix."""

    pass


class ResponseParseError(AssuanError):
    """Raised when a recognized response line fails its own grammar."""

    pass


class ResponseTypeMismatch(AssuanError):
    """Raised when a Response accessor does not match the line's type."""

    pass
