"""Slack integration over the Web API, Events API and Socket Mode."""

from .errors import SlackAdapterError
from .events import (
    chatting_type_from_conversation,
    normalize_message_text,
    parse_block_action_event,
    parse_view_submission,
    rebuild_rich_text,
)
from .listener import SlackListener
from .middleware import SlackMiddleware
from .router import SlackRouter

__all__ = [
    "SlackAdapterError",
    "SlackListener",
    "SlackMiddleware",
    "SlackRouter",
    "chatting_type_from_conversation",
    "normalize_message_text",
    "parse_block_action_event",
    "parse_view_submission",
    "rebuild_rich_text",
]
