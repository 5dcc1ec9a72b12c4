"""Static lookup from chat tool type to its adapter classes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..core.exceptions import ConfigError
from ..core.listener import Listener
from ..core.middleware import Middleware
from ..core.router import Router
from ..core.types import ChatToolType
from .dummy import DummyListener, DummyMiddleware
from .mattermost import MattermostListener, MattermostMiddleware, MattermostRouter
from .msteams import MsteamsListener, MsteamsMiddleware, MsteamsRouter
from .slack import SlackListener, SlackMiddleware, SlackRouter


@dataclass(frozen=True)
class PlatformPlugin:
    listener: type[Listener]
    router: type[Router]
    middleware: type[Middleware]


PLATFORM_PLUGINS: dict[ChatToolType, PlatformPlugin] = {
    ChatToolType.MATTERMOST: PlatformPlugin(
        listener=MattermostListener,
        router=MattermostRouter,
        middleware=MattermostMiddleware,
    ),
    ChatToolType.SLACK: PlatformPlugin(
        listener=SlackListener,
        router=SlackRouter,
        middleware=SlackMiddleware,
    ),
    ChatToolType.MSTEAMS: PlatformPlugin(
        listener=MsteamsListener,
        router=MsteamsRouter,
        middleware=MsteamsMiddleware,
    ),
    # The dummy server speaks the Mattermost interactive callback format.
    ChatToolType.DUMMY: PlatformPlugin(
        listener=DummyListener,
        router=MattermostRouter,
        middleware=DummyMiddleware,
    ),
}


def get_platform_plugin(chat_tool: Union[ChatToolType, str]) -> PlatformPlugin:
    try:
        return PLATFORM_PLUGINS[ChatToolType(chat_tool)]
    except (KeyError, ValueError) as exc:
        raise ConfigError(f"Unsupported chat tool: {chat_tool}") from exc
