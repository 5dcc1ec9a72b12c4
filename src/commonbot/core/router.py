from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from .exceptions import ConfigError
from .logging_utils import log_event
from .types import OperationResult, Route, RouteHandler

if TYPE_CHECKING:
    from ..bot import CommonBot


class Router:
    """Holds the bot's single interactive-callback route.

    Subclasses wire the platform webhook to ``handler`` through their own
    payload translation. A second ``route()`` call replaces the first.
    """

    def __init__(self, bot: "CommonBot", *, logger: Optional[logging.Logger] = None):
        self._bot = bot
        self._logger = logger or bot.logger
        self._route: Optional[Route] = None
        self._mounted_path: Optional[str] = None

    def get_route(self) -> Optional[Route]:
        return self._route

    @property
    def handler(self) -> Optional[RouteHandler]:
        return self._route.handler if self._route is not None else None

    async def route(self, path: str, handler: RouteHandler) -> OperationResult:
        try:
            self._route = Route(path=path, handler=handler)
            await self.wire(path)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "router.route.failed",
                router=type(self).__name__,
                path=path,
                exc=exc,
            )
            return OperationResult.failure(exc)
        log_event(
            self._logger,
            logging.INFO,
            "router.route.registered",
            router=type(self).__name__,
            path=path,
        )
        return OperationResult.success()

    async def wire(self, path: str) -> None:
        """Hook the platform webhook for ``path``; storing the route is enough by default."""
        return None

    def mount_post(self, path: str, endpoint: Callable[..., Any]) -> None:
        """Register ``endpoint`` as the POST handler for ``path`` on the messaging app."""
        app = self._bot.option.messaging_app.app
        if app is None:
            raise ConfigError("messaging_app.app is required to register routes")
        if self._mounted_path is not None:
            unmount_route(app, self._mounted_path, "POST")
        unmount_route(app, path, "POST")
        app.add_api_route(path, endpoint, methods=["POST"])
        self._mounted_path = path


def unmount_route(app: Any, path: str, method: str) -> None:
    routes = app.router.routes
    for existing in list(routes):
        if getattr(existing, "path", None) != path:
            continue
        if method in (getattr(existing, "methods", None) or ()):
            routes.remove(existing)
