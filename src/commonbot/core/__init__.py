"""Platform-neutral chat primitives."""

from .bot_limit import BotLimit, truncate_message
from .command import Adjective, Command, parse_command, serialize_command
from .exceptions import CommonBotError, ConfigError, WrongChatToolError
from .message_matcher import MessageMatcher
from .types import (
    ChatContextData,
    ChattingType,
    ChatToolType,
    Message,
    MessageType,
    OperationResult,
    PayloadType,
)

__all__ = [
    "Adjective",
    "BotLimit",
    "ChatContextData",
    "ChatToolType",
    "ChattingType",
    "Command",
    "CommonBotError",
    "ConfigError",
    "Message",
    "MessageMatcher",
    "MessageType",
    "OperationResult",
    "PayloadType",
    "WrongChatToolError",
    "parse_command",
    "serialize_command",
    "truncate_message",
]
