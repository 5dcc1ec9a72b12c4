from __future__ import annotations

from ...core.router import Router
from .middleware import MsteamsMiddleware


class MsteamsRouter(Router):
    """Teams callbacks arrive on the middleware's messages endpoint.

    Routing only needs the middleware to be running, so ``route()`` starts it
    when no listener has done so yet.
    """

    async def wire(self, path: str) -> None:
        if self._bot.middleware is None:
            middleware = MsteamsMiddleware(self._bot, logger=self._logger)
            self._bot.middleware = middleware
            await middleware.run()
