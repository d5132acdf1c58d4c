"""Exception types for adkchat."""

from __future__ import annotations


class AdkChatError(Exception):
    """Base exception for adkchat."""


class ConfigurationError(AdkChatError):
    """Raised when a configuration value is invalid."""


class ExchangeError(AdkChatError):
    """
    A streaming exchange failed at the transport level.

    Covers a rejected request, a non-success HTTP status and an error while
    reading the response body.  ``status_code`` is set when the server
    answered with a status.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExchangeCancelled(ExchangeError):
    """The caller released the response reader before the stream ended."""


class AccumulatorStateError(AdkChatError, RuntimeError):
    """An accumulator operation was invoked in the wrong lifecycle state."""


class SessionServiceError(AdkChatError):
    """The control-plane API refused to create a session."""


class AttachmentError(AdkChatError, ValueError):
    """A file cannot be attached to a message."""
