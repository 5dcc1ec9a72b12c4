"""Normalized chat-domain types shared by every platform adapter.

Platform adapters translate their wire payloads into these records before
any handler sees them. Platform-agnostic code never looks inside
``ChatToolContext.data``; only the adapter that produced it reads it back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Optional,
    Union,
)

if TYPE_CHECKING:
    from ..bot import CommonBot


class Protocol(str, Enum):
    HTTP = "http"
    HTTPS = "https"
    WS = "ws"
    WSS = "wss"


class LogLevel(str, Enum):
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    VERBOSE = "verbose"
    DEBUG = "debug"
    SILLY = "silly"


class ChatToolType(str, Enum):
    MATTERMOST = "mattermost"
    SLACK = "slack"
    MSTEAMS = "msteams"
    DUMMY = "dummy"


class MessageType(str, Enum):
    PLAIN_TEXT = "plainText"
    MATTERMOST_ATTACHMENT = "mattermost.attachment"
    MATTERMOST_DIALOG_OPEN = "mattermost.dialog.opening"
    SLACK_BLOCK = "slack.block"
    SLACK_VIEW_OPEN = "slack.view"
    SLACK_VIEW_UPDATE = "slack.viewUpdate"
    MSTEAMS_ADAPTIVE_CARD = "msteams.adaptiveCard"


class ChattingType(str, Enum):
    PERSONAL = "personal"
    PUBLIC_CHANNEL = "publicChannel"
    PRIVATE_CHANNEL = "privateChannel"
    GROUP = "group"
    UNKNOWN = "unknown"


class ConnectionStatus(str, Enum):
    ALIVE = "alive"
    NOT_CONNECTED = "not_connected"
    CONNECTING = "connecting"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"
    CLOSING = "closing"
    EXPIRED = "expired"
    ERROR = "error"


class PayloadType(str, Enum):
    MESSAGE = "message"
    EVENT = "event"


class ActionType(str, Enum):
    BUTTON_CLICK = "button.click"
    DROPDOWN_SELECT = "dropdown.select"
    DIALOG_OPEN = "dialog.open"
    DIALOG_SUBMIT = "dialog.submit"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str = ""


@dataclass(frozen=True)
class Name:
    id: str = ""
    name: str = ""


@dataclass(frozen=True)
class Channel:
    id: str
    name: str
    chatting_type: ChattingType = ChattingType.UNKNOWN


@dataclass(frozen=True)
class EventAction:
    id: str
    type: ActionType
    token: str = ""


@dataclass(frozen=True)
class Event:
    """Interactive-component callback (button, select, dialog)."""

    plugin_id: str
    action: EventAction


@dataclass(frozen=True)
class Payload:
    type: PayloadType
    data: Union[str, Event]

    def __post_init__(self) -> None:
        if self.type == PayloadType.MESSAGE and not isinstance(self.data, str):
            raise ValueError("message payload data must be a string")
        if self.type == PayloadType.EVENT and not isinstance(self.data, Event):
            raise ValueError("event payload data must be an Event")


@dataclass(frozen=True)
class ChatToolContext:
    """Opaque platform context handed back to the originating adapter."""

    platform: ChatToolType
    data: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass(frozen=True)
class Chatting:
    bot: Optional["CommonBot"]
    type: ChattingType
    user: User
    channel: Name
    team: Name = field(default_factory=Name)
    tenant: Name = field(default_factory=Name)


@dataclass(frozen=True)
class Context:
    chatting: Chatting
    chat_tool: Optional[ChatToolContext] = None


@dataclass(frozen=True)
class ChatContextData:
    payload: Payload
    context: Context

    @property
    def message(self) -> str:
        if self.payload.type == PayloadType.MESSAGE and isinstance(
            self.payload.data, str
        ):
            return self.payload.data
        return ""

    @property
    def event(self) -> Optional[Event]:
        if isinstance(self.payload.data, Event):
            return self.payload.data
        return None

    @classmethod
    def proactive(
        cls,
        bot: Optional["CommonBot"],
        *,
        channel_id: str = "",
        channel_name: str = "",
        chatting_type: ChattingType = ChattingType.UNKNOWN,
        team: Optional[Name] = None,
        text: str = "",
    ) -> "ChatContextData":
        """Context for an unsolicited message; no chat tool context is attached."""
        return cls(
            payload=Payload(type=PayloadType.MESSAGE, data=text),
            context=Context(
                chatting=Chatting(
                    bot=bot,
                    type=chatting_type,
                    user=User(id="", name=""),
                    channel=Name(id=channel_id, name=channel_name),
                    team=team or Name(),
                ),
                chat_tool=None,
            ),
        )


@dataclass(frozen=True)
class Mention:
    """Reference to a user or channel to be mentioned in an outbound message."""

    id: str = ""
    name: str = ""
    channel_id: str = ""
    channel_name: str = ""


@dataclass(frozen=True)
class Message:
    type: MessageType
    message: Any
    mentions: tuple[Mention, ...] = ()


MessageMatcherFunc = Callable[[str], bool]
MessageHandler = Callable[[ChatContextData], Awaitable[Any]]
RouteHandler = Callable[[ChatContextData], Awaitable[Any]]


@dataclass
class MatcherEntry:
    matcher: MessageMatcherFunc
    handlers: list[MessageHandler] = field(default_factory=list)


@dataclass(frozen=True)
class HandlerIndex:
    matcher_index: int
    handler_index: int

    @property
    def found(self) -> bool:
        return self.matcher_index >= 0 and self.handler_index >= 0


NOT_FOUND = HandlerIndex(matcher_index=-1, handler_index=-1)


@dataclass(frozen=True)
class Route:
    path: str
    handler: RouteHandler


@dataclass(frozen=True)
class OperationResult:
    """Outcome of an adapter-boundary operation whose failure is logged."""

    ok: bool
    error: Optional[BaseException] = None

    @classmethod
    def success(cls) -> "OperationResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: BaseException) -> "OperationResult":
        return cls(ok=False, error=error)
