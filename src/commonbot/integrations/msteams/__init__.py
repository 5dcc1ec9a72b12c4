"""Microsoft Teams integration over the Bot Framework REST protocol."""

from .activities import (
    chatting_type_from_conversation_type,
    parse_button_event,
    parse_task_event,
    remove_recipient_mention,
)
from .auth import BotFrameworkTokenValidator
from .connector import BotFrameworkConnector
from .errors import MsteamsAPIError, MsteamsAuthError
from .listener import MsteamsListener
from .middleware import MsteamsMiddleware
from .router import MsteamsRouter

__all__ = [
    "BotFrameworkConnector",
    "BotFrameworkTokenValidator",
    "MsteamsAPIError",
    "MsteamsAuthError",
    "MsteamsListener",
    "MsteamsMiddleware",
    "MsteamsRouter",
    "chatting_type_from_conversation_type",
    "parse_button_event",
    "parse_task_event",
    "remove_recipient_mention",
]
