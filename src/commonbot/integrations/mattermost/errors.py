from __future__ import annotations

from typing import Optional

from ...core.exceptions import (
    PlatformAPIError,
    PlatformPermanentError,
    PlatformTransientError,
)


class MattermostAPIError(PlatformAPIError):
    """Mattermost REST or WebSocket request error."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
    ) -> None:
        if user_message is None:
            user_message = "Mattermost server error. Retrying with backoff..."
        super().__init__(message, status_code=status_code, user_message=user_message)


class MattermostTransientError(MattermostAPIError, PlatformTransientError):
    """Retryable Mattermost failure (timeouts, dropped sockets)."""


class MattermostPermanentError(MattermostAPIError, PlatformPermanentError):
    """Non-retryable Mattermost failure (bad token, unknown team)."""

    recoverable = PlatformPermanentError.recoverable
    severity = PlatformPermanentError.severity
