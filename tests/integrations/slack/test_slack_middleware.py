from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Optional
from urllib.parse import urlencode

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from slack_sdk.signature import SignatureVerifier

from commonbot.bot import CommonBot
from commonbot.core.config import BotOption
from commonbot.core.types import (
    ActionType,
    ChatContextData,
    ChattingType,
    Message,
    MessageType,
)
from commonbot.integrations.slack import SlackListener, SlackMiddleware

LOGGER = logging.getLogger("test.slack.middleware")
SIGNING_SECRET = "shhh"

CHANNELS = {
    "C1": {"id": "C1", "name": "general", "is_channel": True, "is_mpim": False},
    "D1": {"id": "D1", "name": "", "is_im": True},
}


class _FakeWebClient:
    def __init__(self) -> None:
        self.posted: list[dict[str, Any]] = []
        self.views: list[tuple[str, dict[str, Any]]] = []
        self.calls: list[str] = []

    async def auth_test(self) -> dict[str, Any]:
        self.calls.append("auth_test")
        return {"user_id": "UBOT", "user": "zbot"}

    async def users_info(self, user: str) -> dict[str, Any]:
        self.calls.append(f"users_info:{user}")
        if user == "UBOT":
            return {"user": {"id": "UBOT", "real_name": "zbot"}}
        return {
            "user": {
                "id": user,
                "real_name": "Alice",
                "profile": {"email": "alice@example.com"},
            }
        }

    async def conversations_info(self, channel: str) -> dict[str, Any]:
        self.calls.append(f"conversations_info:{channel}")
        return {"channel": CHANNELS[channel]}

    async def conversations_list(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append("conversations_list")
        if kwargs.get("cursor") is None:
            return {
                "channels": [CHANNELS["C1"]],
                "response_metadata": {"next_cursor": "page2"},
            }
        return {
            "channels": [{"id": "C9", "name": "ops", "is_channel": True, "is_mpim": False}],
            "response_metadata": {"next_cursor": ""},
        }

    async def chat_postMessage(self, **kwargs: Any) -> dict[str, Any]:
        self.posted.append(kwargs)
        return {"ok": True}

    async def views_open(self, **kwargs: Any) -> dict[str, Any]:
        self.views.append(("open", kwargs))
        return {"ok": True}

    async def views_update(self, **kwargs: Any) -> dict[str, Any]:
        self.views.append(("update", kwargs))
        return {"ok": True}


def _bot(app: Optional[FastAPI] = None) -> CommonBot:
    option = BotOption.from_raw(
        {
            "chat_tool": {
                "type": "slack",
                "option": {
                    "bot_user_name": "zbot",
                    "token": "xoxb-test",
                    "signing_secret": SIGNING_SECRET,
                },
            }
        },
        app=app,
        env={},
    )
    return CommonBot(option, logger=LOGGER)


def _middleware(app: Optional[FastAPI] = None) -> tuple[SlackMiddleware, _FakeWebClient]:
    bot = _bot(app)
    middleware = SlackMiddleware(bot)
    fake = _FakeWebClient()
    middleware._web_client = fake  # type: ignore[assignment]
    bot.middleware = middleware
    return middleware, fake


def _record(bot: CommonBot) -> list[ChatContextData]:
    seen: list[ChatContextData] = []

    async def handler(ctx: ChatContextData) -> None:
        seen.append(ctx)

    listener = SlackListener(bot)
    listener.message_matcher.add_matcher(lambda text: True, handler)
    bot.add_listener(listener)
    return seen


async def _running_middleware() -> tuple[SlackMiddleware, _FakeWebClient, FastAPI]:
    app = FastAPI()
    middleware, fake = _middleware(app)
    await middleware.run()
    return middleware, fake, app


def test_run_authenticates_and_mounts_http_receiver() -> None:
    middleware, fake, app = asyncio.run(_running_middleware())
    client = TestClient(app)

    challenge = json.dumps({"type": "url_verification", "challenge": "xyz"})
    events = client.post(
        "/slack/events", content=challenge, headers=_signed_headers(challenge)
    )
    form = urlencode({"payload": json.dumps({"type": "view_closed"})})
    actions = client.post(
        "/slack/actions",
        content=form,
        headers=_signed_headers(form)
        | {"Content-Type": "application/x-www-form-urlencoded"},
    )

    assert events.status_code == 200
    assert events.json() == {"challenge": "xyz"}
    assert actions.status_code == 200
    assert fake.calls == ["auth_test"]
    assert middleware.bot_user is not None
    assert middleware.bot_user.id == "UBOT"


@pytest.mark.anyio
async def test_direct_message_is_prefixed_and_lookups_are_cached() -> None:
    middleware, fake, _ = await _running_middleware()
    seen = _record(middleware.bot)

    await middleware.handle_event_callback(
        {"event": {"type": "message", "user": "U1", "channel": "D1", "text": "help"}}
    )
    await middleware.handle_event_callback(
        {"event": {"type": "message", "user": "U1", "channel": "D1", "text": "again"}}
    )

    assert [ctx.message for ctx in seen] == ["@zbot help", "@zbot again"]
    assert seen[0].context.chatting.type == ChattingType.PERSONAL
    assert seen[0].context.chatting.user.email == "alice@example.com"
    assert fake.calls.count("users_info:U1") == 1
    assert fake.calls.count("conversations_info:D1") == 1


@pytest.mark.anyio
async def test_channel_mention_is_spelled_out() -> None:
    middleware, _, _ = await _running_middleware()
    seen = _record(middleware.bot)

    await middleware.handle_event_callback(
        {
            "event": {
                "type": "message",
                "user": "U1",
                "channel": "C1",
                "text": "<@UBOT> status",
                "thread_ts": "123.45",
            }
        }
    )

    assert seen[0].message == "@zbot status"
    assert seen[0].context.chatting.channel.name == "general"
    assert seen[0].context.chat_tool is not None
    assert seen[0].context.chat_tool.get("thread_ts") == "123.45"


@pytest.mark.anyio
async def test_own_and_bot_messages_are_dropped() -> None:
    middleware, _, _ = await _running_middleware()
    seen = _record(middleware.bot)

    await middleware.handle_event_callback(
        {"event": {"type": "message", "user": "UBOT", "channel": "C1", "text": "x"}}
    )
    await middleware.handle_event_callback(
        {
            "event": {
                "type": "message",
                "subtype": "bot_message",
                "user": "U2",
                "channel": "C1",
                "text": "y",
            }
        }
    )

    assert seen == []


@pytest.mark.anyio
async def test_block_action_reaches_route_handler() -> None:
    middleware, _, _ = await _running_middleware()
    events: list[ChatContextData] = []

    async def on_action(ctx: ChatContextData) -> None:
        events.append(ctx)

    result = await middleware.bot.route("/ignored", on_action)
    await middleware.process_action(
        {
            "type": "block_actions",
            "user": {"id": "U1"},
            "channel": {"id": "C1"},
            "actions": [{"type": "button", "action_id": "deploy:go:tok"}],
        }
    )

    assert result.ok
    assert events[0].event is not None
    assert events[0].event.action.type == ActionType.BUTTON_CLICK
    assert events[0].context.chatting.user.name == "Alice"


@pytest.mark.anyio
async def test_reply_sends_text_blocks_and_views() -> None:
    middleware, fake, _ = await _running_middleware()
    seen = _record(middleware.bot)
    await middleware.handle_event_callback(
        {"event": {"type": "message", "user": "U1", "channel": "C1", "text": "hi"}}
    )

    result = await middleware.bot.send(
        seen[0],
        [
            Message(type=MessageType.PLAIN_TEXT, message="hello"),
            Message(type=MessageType.SLACK_BLOCK, message={"blocks": [{"type": "divider"}]}),
            Message(
                type=MessageType.SLACK_VIEW_OPEN,
                message={"trigger_id": "tr", "view": {"type": "modal"}},
            ),
        ],
    )

    assert result.ok
    assert fake.posted == [
        {"channel": "C1", "text": "hello"},
        {
            "blocks": [{"type": "divider"}],
            "text": "New message from Common bot",
            "channel": "C1",
        },
    ]
    assert fake.views == [("open", {"trigger_id": "tr", "view": {"type": "modal"}})]


@pytest.mark.anyio
async def test_proactive_send_pages_through_channels() -> None:
    middleware, fake, _ = await _running_middleware()

    result = await middleware.bot.send(
        ChatContextData.proactive(middleware.bot, channel_name="ops"),
        [Message(type=MessageType.PLAIN_TEXT, message="deployed")],
    )

    assert result.ok
    assert fake.posted == [{"channel": "C9", "text": "deployed"}]
    assert fake.calls.count("conversations_list") == 2


@pytest.mark.anyio
async def test_proactive_send_to_unknown_channel_posts_nothing() -> None:
    middleware, fake, _ = await _running_middleware()

    result = await middleware.bot.send(
        ChatContextData.proactive(middleware.bot, channel_name="nonexistent"),
        [Message(type=MessageType.PLAIN_TEXT, message="hello")],
    )

    assert not result.ok
    assert fake.posted == []


def _signed_headers(body: str, *, secret: str = SIGNING_SECRET) -> dict[str, str]:
    timestamp = str(int(time.time()))
    signature = SignatureVerifier(secret).generate_signature(
        timestamp=timestamp, body=body
    )
    return {
        "X-Slack-Request-Timestamp": timestamp,
        "X-Slack-Signature": signature,
        "Content-Type": "application/json",
    }


def test_http_receiver_verifies_signatures_and_dispatches() -> None:
    middleware, _, app = asyncio.run(_running_middleware())
    seen = _record(middleware.bot)
    client = TestClient(app)

    challenge = json.dumps({"type": "url_verification", "challenge": "abc"})
    response = client.post(
        "/slack/events", content=challenge, headers=_signed_headers(challenge)
    )
    assert response.status_code == 200
    assert response.json() == {"challenge": "abc"}

    forged = client.post(
        "/slack/events",
        content=challenge,
        headers=_signed_headers(challenge, secret="wrong"),
    )
    assert forged.status_code == 401

    event = json.dumps(
        {
            "type": "event_callback",
            "event": {"type": "message", "user": "U1", "channel": "C1", "text": "hi"},
        }
    )
    response = client.post("/slack/events", content=event, headers=_signed_headers(event))
    assert response.status_code == 200
    assert [ctx.message for ctx in seen] == ["hi"]


@pytest.mark.parametrize(
    ("path", "body", "content_type"),
    [
        ("/slack/events", "{not json", "application/json"),
        ("/slack/events", '["not", "an", "object"]', "application/json"),
        ("/slack/actions", "payload=%7Bnot+json", "application/x-www-form-urlencoded"),
    ],
)
def test_http_receiver_rejects_malformed_payloads(
    path: str, body: str, content_type: str, caplog: pytest.LogCaptureFixture
) -> None:
    middleware, _, app = asyncio.run(_running_middleware())
    seen = _record(middleware.bot)
    client = TestClient(app)

    caplog.set_level(logging.WARNING, logger="test.slack.middleware")
    response = client.post(
        path,
        content=body,
        headers=_signed_headers(body) | {"Content-Type": content_type},
    )

    assert response.status_code == 400
    assert seen == []
    assert "slack.payload.malformed" in caplog.text
