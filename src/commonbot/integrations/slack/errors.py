from __future__ import annotations

from ...core.exceptions import PlatformAPIError


class SlackAdapterError(PlatformAPIError):
    """Slack adapter failure outside the Web API error envelope."""
