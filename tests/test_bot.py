from __future__ import annotations

import logging

import pytest
from fastapi import FastAPI

from commonbot.bot import CommonBot
from commonbot.core.config import BotOption
from commonbot.core.exceptions import CommonBotError, ConfigError, WrongChatToolError
from commonbot.core.types import (
    ChatContextData,
    Message,
    MessageType,
    User,
)
from commonbot.integrations.dummy import DummyListener, DummyMiddleware
from commonbot.integrations.mattermost import MattermostMiddleware, MattermostRouter
from commonbot.integrations.registry import get_platform_plugin

LOGGER = logging.getLogger("test.bot")


def _dummy_bot(app=None) -> CommonBot:
    option = BotOption.from_raw(
        {
            "chat_tool": {
                "type": "dummy",
                "option": {
                    "protocol": "http",
                    "host_name": "localhost",
                    "port": 8065,
                    "team_url": "dummy",
                    "bot_user_name": "zbot",
                },
            }
        },
        app=app,
        env={},
    )
    return CommonBot(option, logger=LOGGER)


def test_registry_maps_dummy_to_mattermost_router() -> None:
    plugin = get_platform_plugin("dummy")

    assert plugin.listener is DummyListener
    assert plugin.middleware is DummyMiddleware
    assert plugin.router is MattermostRouter
    with pytest.raises(ConfigError):
        get_platform_plugin("irc")


def test_bot_exposes_limit_for_chat_tool() -> None:
    bot = _dummy_bot()

    assert bot.limit is not None
    assert bot.limit.message_max_length == 16383
    assert bot.middleware is None
    assert bot.listeners == []


@pytest.mark.anyio
async def test_listen_creates_one_shared_middleware() -> None:
    bot = _dummy_bot()

    async def handler(_ctx: ChatContextData) -> None:
        return None

    first = await bot.listen(lambda text: True, handler)
    middleware = bot.middleware
    second = await bot.listen(lambda text: False, handler)

    assert first.ok and second.ok
    assert isinstance(middleware, DummyMiddleware)
    assert bot.middleware is middleware
    assert len(bot.listeners) == 2
    assert all(len(listener.message_matcher) == 1 for listener in bot.listeners)
    await bot.close()
    assert bot.middleware is None


@pytest.mark.anyio
async def test_listen_failure_is_reported_without_registering(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    bot = _dummy_bot()

    async def broken_run(self) -> None:
        raise RuntimeError("cannot start")

    monkeypatch.setattr(DummyMiddleware, "run", broken_run)

    async def handler(_ctx: ChatContextData) -> None:
        return None

    result = await bot.listen(lambda text: True, handler)

    assert not result.ok
    assert isinstance(result.error, RuntimeError)
    assert len(bot.listeners[0].message_matcher) == 0


@pytest.mark.anyio
async def test_dispatch_runs_handlers_in_registration_order() -> None:
    bot = _dummy_bot()
    calls: list[str] = []

    async def first(ctx: ChatContextData) -> None:
        calls.append(f"first:{ctx.message}")

    async def second(ctx: ChatContextData) -> None:
        calls.append(f"second:{ctx.message}")

    async def skipped(_ctx: ChatContextData) -> None:
        calls.append("skipped")

    await bot.listen(lambda text: "help" in text, first)
    await bot.listen(lambda text: text.startswith("@zbot"), second)
    await bot.listen(lambda text: False, skipped)

    invoked = await bot.middleware.dispatch_message(
        ChatContextData.proactive(bot, channel_id="c1", text="@zbot help")
    )

    assert invoked == 2
    assert calls == ["first:@zbot help", "second:@zbot help"]
    await bot.close()


@pytest.mark.anyio
async def test_send_without_middleware_fails_softly() -> None:
    bot = _dummy_bot()

    result = await bot.send(
        ChatContextData.proactive(bot, channel_name="town-square"),
        [Message(type=MessageType.PLAIN_TEXT, message="hi")],
    )

    assert not result.ok
    assert isinstance(result.error, CommonBotError)


@pytest.mark.anyio
async def test_route_replaces_previous_route() -> None:
    app = FastAPI()
    bot = _dummy_bot(app=app)

    async def handler(_ctx: ChatContextData) -> None:
        return None

    assert (await bot.route("/actions", handler)).ok
    assert (await bot.route("/actions-v2", handler)).ok

    router = bot.router
    assert isinstance(router, MattermostRouter)
    assert router.get_route().path == "/actions-v2"
    paths = {getattr(route, "path", None) for route in app.router.routes}
    assert "/actions-v2" in paths
    assert "/actions" not in paths


@pytest.mark.anyio
async def test_route_without_app_reports_config_error() -> None:
    bot = _dummy_bot()

    async def handler(_ctx: ChatContextData) -> None:
        return None

    result = await bot.route("/actions", handler)

    assert not result.ok
    assert isinstance(result.error, ConfigError)


def test_middleware_rejects_wrong_chat_tool() -> None:
    bot = _dummy_bot()

    with pytest.raises(WrongChatToolError):
        MattermostMiddleware(bot)


def test_middleware_user_cache_never_overwrites() -> None:
    bot = _dummy_bot()
    middleware = DummyMiddleware(bot)

    middleware.add_user("u1", User(id="u1", name="alice", email="a@example.com"))
    middleware.add_user("u1", User(id="u1", name="changed"))

    assert middleware.cached_user("u1").name == "alice"
