"""Shared error hierarchy.

Platform adapters compose these base types so retry and severity behavior
stays consistent across Mattermost, Slack, Teams and the dummy platform.
"""

from __future__ import annotations

from typing import Optional


class CommonBotError(Exception):
    """Base error for every commonbot failure."""

    recoverable = True
    severity = "error"

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class TransientError(CommonBotError):
    """Failure that may succeed when retried (network, timeouts)."""


class PermanentError(CommonBotError):
    """Failure that will not succeed on retry (auth, validation, config)."""

    recoverable = False
    severity = "critical"


class ConfigError(PermanentError):
    """Bot option or environment configuration is invalid."""


class WrongChatToolError(ConfigError):
    """A platform middleware was built for a bot configured for another tool."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"Wrong chat tool type set in bot option: {actual} (expected {expected})",
            user_message="The bot is not configured for this chat tool.",
        )
        self.expected = expected
        self.actual = actual


class PlatformAPIError(CommonBotError):
    """Request to a chat platform API failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.status_code = status_code


class PlatformTransientError(PlatformAPIError, TransientError):
    """Retryable platform API error."""


class PlatformPermanentError(PlatformAPIError, PermanentError):
    """Non-retryable platform API error."""

    recoverable = PermanentError.recoverable
    severity = PermanentError.severity
