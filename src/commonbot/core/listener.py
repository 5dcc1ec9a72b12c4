from __future__ import annotations

import logging
from typing import TYPE_CHECKING, ClassVar, Optional

from .logging_utils import log_event
from .message_matcher import MessageMatcher
from .middleware import Middleware
from .types import MessageHandler, MessageMatcherFunc, OperationResult

if TYPE_CHECKING:
    from ..bot import CommonBot


class Listener:
    """Registers (matcher, handler) pairs for one ``listen()`` call site.

    Each listener owns its own matcher registry; all listeners of a bot share
    the single bot-wide middleware, created on first use.
    """

    middleware_class: ClassVar[type[Middleware]]

    def __init__(self, bot: "CommonBot", *, logger: Optional[logging.Logger] = None):
        self._bot = bot
        self._logger = logger or bot.logger
        self._message_matcher = MessageMatcher()

    @property
    def message_matcher(self) -> MessageMatcher:
        return self._message_matcher

    def create_middleware(self) -> Middleware:
        return self.middleware_class(self._bot, logger=self._logger)

    async def listen(
        self, matcher: MessageMatcherFunc, handler: MessageHandler
    ) -> OperationResult:
        try:
            if self._bot.middleware is None:
                middleware = self.create_middleware()
                self._bot.middleware = middleware
                await middleware.run()
            self._message_matcher.add_matcher(matcher, handler)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "listener.listen.failed",
                listener=type(self).__name__,
                exc=exc,
            )
            return OperationResult.failure(exc)
        log_event(
            self._logger,
            logging.DEBUG,
            "listener.listen.registered",
            listener=type(self).__name__,
            matchers=len(self._message_matcher),
        )
        return OperationResult.success()
