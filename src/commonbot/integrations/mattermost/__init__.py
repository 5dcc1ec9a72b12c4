"""Mattermost integration over REST and WebSocket."""

from .client import (
    CHATTING_TYPES,
    MattermostClient,
    RestResponse,
    build_authentication_challenge,
    build_websocket_url,
)
from .errors import (
    MattermostAPIError,
    MattermostPermanentError,
    MattermostTransientError,
)
from .listener import MattermostListener
from .middleware import MattermostMiddleware
from .router import MattermostRouter, parse_action_event

__all__ = [
    "CHATTING_TYPES",
    "MattermostAPIError",
    "MattermostClient",
    "MattermostListener",
    "MattermostMiddleware",
    "MattermostPermanentError",
    "MattermostRouter",
    "MattermostTransientError",
    "RestResponse",
    "build_authentication_challenge",
    "build_websocket_url",
    "parse_action_event",
]
