"""Base contract for per-platform adapters.

A middleware owns the platform session, turns platform payloads into
``ChatContextData``, runs the matching handlers of every registered
listener and turns outbound ``Message`` lists back into platform calls.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from .exceptions import WrongChatToolError
from .logging_utils import log_event
from .types import ChatContextData, ChatToolType, Message, OperationResult, User

if TYPE_CHECKING:
    from ..bot import CommonBot


class Middleware(abc.ABC):
    chat_tool_type: ChatToolType

    def __init__(self, bot: "CommonBot", *, logger: Optional[logging.Logger] = None):
        self._bot = bot
        self._logger = logger or bot.logger
        self._bot_user: Optional[User] = None
        self._users: dict[str, User] = {}
        actual = bot.option.chat_tool.type
        if actual != self.chat_tool_type:
            log_event(
                self._logger,
                logging.ERROR,
                "middleware.chat_tool.mismatch",
                expected=self.chat_tool_type.value,
                actual=ChatToolType(actual).value,
            )
            raise WrongChatToolError(self.chat_tool_type.value, ChatToolType(actual).value)

    @property
    def bot(self) -> "CommonBot":
        return self._bot

    @property
    def bot_user(self) -> Optional[User]:
        return self._bot_user

    def update_bot_user(self, user: User) -> None:
        self._bot_user = user

    def add_user(self, user_id: str, user: User) -> None:
        """Cache ``user``; an already cached id is never overwritten."""
        if user_id in self._users:
            return
        self._users[user_id] = user

    def cached_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    @abc.abstractmethod
    async def run(self) -> None:
        """Open the platform session or register the inbound HTTP handler."""

    @abc.abstractmethod
    async def send(
        self, chat_context_data: ChatContextData, messages: Sequence[Message]
    ) -> OperationResult:
        """Deliver ``messages`` through the platform API."""

    async def close(self) -> None:
        return None

    async def dispatch_message(self, chat_context_data: ChatContextData) -> int:
        """Run every matching handler in registration order.

        Handler errors propagate; callers wrap the whole translation step.
        Returns the number of handlers invoked.
        """
        invoked = 0
        text = chat_context_data.message
        for listener in self._iter_listeners():
            for entry in listener.message_matcher.get_matchers():
                if not entry.matcher(text):
                    continue
                for handler in list(entry.handlers):
                    await handler(chat_context_data)
                    invoked += 1
        log_event(
            self._logger,
            logging.DEBUG,
            "middleware.dispatch.completed",
            chat_tool=self.chat_tool_type.value,
            handlers=invoked,
        )
        return invoked

    def _iter_listeners(self) -> Iterable:
        return list(self._bot.listeners)

    def _is_self(self, author_id: Optional[str]) -> bool:
        return (
            self._bot_user is not None
            and author_id is not None
            and author_id == self._bot_user.id
        )
