from __future__ import annotations

from ...core.router import Router
from .middleware import SlackMiddleware


class SlackRouter(Router):
    """Interactions arrive through the middleware's Events API or Socket Mode intake."""

    async def wire(self, path: str) -> None:
        if self._bot.middleware is None:
            middleware = SlackMiddleware(self._bot, logger=self._logger)
            self._bot.middleware = middleware
            await middleware.run()
