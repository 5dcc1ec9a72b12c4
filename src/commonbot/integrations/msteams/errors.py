from __future__ import annotations

from typing import Optional

from ...core.exceptions import PlatformAPIError, PlatformPermanentError


class MsteamsAPIError(PlatformAPIError):
    """Bot Framework connector request failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
    ) -> None:
        if user_message is None:
            user_message = "Microsoft Teams request failed."
        super().__init__(message, status_code=status_code, user_message=user_message)


class MsteamsAuthError(MsteamsAPIError, PlatformPermanentError):
    """Inbound activity token or outbound credentials were rejected."""

    recoverable = PlatformPermanentError.recoverable
    severity = PlatformPermanentError.severity
