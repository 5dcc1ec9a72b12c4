"""Platform-agnostic bot facade.

``CommonBot`` resolves the adapter classes for the configured chat tool and
exposes ``listen``/``route``/``send``. Failures at these boundaries are
logged and reported through ``OperationResult`` instead of raised, so a
misbehaving platform never takes the hosting process down.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .core.bot_limit import BotLimit, BotLimitValue
from .core.config import BotOption
from .core.exceptions import CommonBotError
from .core.listener import Listener
from .core.logging_utils import log_event
from .core.middleware import Middleware
from .core.router import Router
from .core.types import (
    ChatContextData,
    Message,
    MessageHandler,
    MessageMatcherFunc,
    OperationResult,
    RouteHandler,
)
from .integrations.registry import PlatformPlugin, get_platform_plugin


class CommonBot:
    def __init__(
        self, option: BotOption, *, logger: Optional[logging.Logger] = None
    ) -> None:
        self._option = option
        self._logger = logger or logging.getLogger(__name__)
        self._plugin = get_platform_plugin(option.chat_tool.type)
        self._middleware: Optional[Middleware] = None
        self._listeners: list[Listener] = []
        self._router: Optional[Router] = None

    @property
    def option(self) -> BotOption:
        return self._option

    @option.setter
    def option(self, option: BotOption) -> None:
        self._option = option
        self._plugin = get_platform_plugin(option.chat_tool.type)

    @property
    def plugin(self) -> PlatformPlugin:
        return self._plugin

    @property
    def limit(self) -> Optional[BotLimitValue]:
        return BotLimit.get(self._option.chat_tool.type)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def middleware(self) -> Optional[Middleware]:
        return self._middleware

    @middleware.setter
    def middleware(self, middleware: Optional[Middleware]) -> None:
        self._middleware = middleware

    @property
    def listeners(self) -> list[Listener]:
        return list(self._listeners)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    @property
    def router(self) -> Optional[Router]:
        return self._router

    async def listen(
        self, matcher: MessageMatcherFunc, handler: MessageHandler
    ) -> OperationResult:
        """Register ``handler`` for inbound messages accepted by ``matcher``.

        Every call creates its own listener; all listeners share the one
        middleware, which the first call creates and starts.
        """
        try:
            listener = self._plugin.listener(self, logger=self._logger)
        except Exception as exc:
            log_event(self._logger, logging.ERROR, "bot.listen.failed", exc=exc)
            return OperationResult.failure(exc)
        self._listeners.append(listener)
        return await listener.listen(matcher, handler)

    async def route(self, path: str, handler: RouteHandler) -> OperationResult:
        """Register the single interactive-callback handler; a later call replaces it."""
        try:
            if self._router is None:
                self._router = self._plugin.router(self, logger=self._logger)
        except Exception as exc:
            log_event(self._logger, logging.ERROR, "bot.route.failed", exc=exc)
            return OperationResult.failure(exc)
        return await self._router.route(path, handler)

    async def send(
        self, chat_context_data: ChatContextData, messages: Sequence[Message]
    ) -> OperationResult:
        middleware = self._middleware
        if middleware is None:
            error = CommonBotError(
                "No middleware is running; call listen() or route() first",
                user_message="The bot is not connected to a chat tool yet.",
            )
            log_event(self._logger, logging.ERROR, "bot.send.no_middleware")
            return OperationResult.failure(error)
        try:
            return await middleware.send(chat_context_data, messages)
        except Exception as exc:
            log_event(self._logger, logging.ERROR, "bot.send.failed", exc=exc)
            return OperationResult.failure(exc)

    async def close(self) -> None:
        middleware = self._middleware
        self._middleware = None
        if middleware is not None:
            await middleware.close()
        log_event(self._logger, logging.INFO, "bot.closed")
