from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence

from slack_sdk.errors import SlackApiError
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse
from slack_sdk.socket_mode.websockets import SocketModeClient
from slack_sdk.web.async_client import AsyncWebClient

from ...core.config import SlackOption
from ...core.logging_utils import log_event
from ...core.middleware import Middleware
from ...core.types import (
    Channel,
    ChatContextData,
    Chatting,
    ChatToolContext,
    ChatToolType,
    Context,
    Event,
    Message,
    MessageType,
    Name,
    OperationResult,
    Payload,
    PayloadType,
    User,
)
from .errors import SlackAdapterError
from .events import (
    DEFAULT_MESSAGE_TEXT,
    chatting_type_from_conversation,
    normalize_message_text,
    parse_block_action_event,
    parse_view_submission,
    should_ignore_message,
)
from .receiver import build_slack_routes

if TYPE_CHECKING:
    from ...bot import CommonBot


class SlackMiddleware(Middleware):
    """Slack adapter over the Web API with Events API or Socket Mode intake."""

    chat_tool_type = ChatToolType.SLACK

    def __init__(self, bot: "CommonBot", *, logger: Optional[logging.Logger] = None):
        super().__init__(bot, logger=logger)
        self._channels: dict[str, Channel] = {}
        self._bot_name = ""
        self._bot_user_id = ""
        self._web_client = AsyncWebClient(token=self.option.token, logger=self._logger)
        self._socket_client: Optional[SocketModeClient] = None

    @property
    def option(self) -> SlackOption:
        return self._bot.option.chat_tool.option  # type: ignore[return-value]

    @property
    def web_client(self) -> AsyncWebClient:
        return self._web_client

    async def run(self) -> None:
        auth = await self._web_client.auth_test()
        self._bot_user_id = str(auth.get("user_id") or "")
        self.update_bot_user(User(id=self._bot_user_id, name=str(auth.get("user") or "")))
        option = self.option
        if option.socket_mode:
            self._socket_client = SocketModeClient(
                app_token=str(option.app_token),
                web_client=self._web_client,
                logger=self._logger,
            )
            self._socket_client.socket_mode_request_listeners.append(
                self._on_socket_request
            )
            await self._socket_client.connect()
            log_event(self._logger, logging.INFO, "slack.socket_mode.connected")
            return

        app = self._bot.option.messaging_app.app
        if app is None:
            raise SlackAdapterError("messaging_app.app is required when socket_mode is off")
        app.include_router(
            build_slack_routes(
                self,
                signing_secret=str(option.signing_secret),
                message_path=option.endpoints.message_path,
                action_path=option.endpoints.action_path,
                logger=self._logger,
            )
        )
        log_event(
            self._logger,
            logging.INFO,
            "slack.http.mounted",
            message_path=option.endpoints.message_path,
            action_path=option.endpoints.action_path,
        )

    async def close(self) -> None:
        if self._socket_client is not None:
            await self._socket_client.close()
            self._socket_client = None

    async def _on_socket_request(
        self, client: SocketModeClient, request: SocketModeRequest
    ) -> None:
        await client.send_socket_mode_response(
            SocketModeResponse(envelope_id=request.envelope_id)
        )
        if request.type == "events_api":
            await self.handle_event_callback(request.payload)
        elif request.type == "interactive":
            await self.handle_interactive(request.payload)
        else:
            self._logger.debug("Ignoring Slack socket request type %s", request.type)

    async def handle_event_callback(self, body: dict[str, Any]) -> None:
        event = body.get("event") or {}
        if event.get("type") != "message" or should_ignore_message(event):
            return
        await self.process_message(event, body)

    async def handle_interactive(self, payload: dict[str, Any]) -> None:
        kind = payload.get("type")
        if kind == "block_actions":
            await self.process_action(payload)
        elif kind == "view_submission":
            await self.process_view_action(payload)
        else:
            self._logger.debug("Ignoring Slack interactive payload type %s", kind)

    async def _ensure_bot_name(self) -> str:
        if not self._bot_name.strip():
            info = await self._web_client.users_info(user=self._bot_user_id)
            self._bot_name = str((info.get("user") or {}).get("real_name") or "")
        return self._bot_name

    async def _resolve_user(self, user_id: str) -> User:
        user = self.cached_user(user_id)
        if user is not None:
            return user
        info = await self._web_client.users_info(user=user_id)
        raw = info.get("user") or {}
        user = User(
            id=str(raw.get("id") or user_id),
            name=str(raw.get("real_name") or ""),
            email=str((raw.get("profile") or {}).get("email") or ""),
        )
        if user.id.strip():
            self.add_user(user.id, user)
        return user

    async def get_channel_by_id(self, channel_id: str) -> Channel:
        channel = self._channels.get(channel_id)
        if channel is not None:
            return channel
        info = await self._web_client.conversations_info(channel=channel_id)
        raw = info.get("channel") or {}
        channel = Channel(
            id=channel_id,
            name=str(raw.get("name") or ""),
            chatting_type=chatting_type_from_conversation(raw),
        )
        self._channels[channel_id] = channel
        return channel

    async def find_channel_by_name(self, name: str) -> Optional[Channel]:
        cursor: Optional[str] = None
        while True:
            response = await self._web_client.conversations_list(
                cursor=cursor,
                limit=200,
                types="public_channel,private_channel",
                exclude_archived=True,
            )
            for raw in response.get("channels") or []:
                if raw.get("name") == name:
                    channel = Channel(
                        id=str(raw.get("id")),
                        name=name,
                        chatting_type=chatting_type_from_conversation(raw),
                    )
                    self._channels[channel.id] = channel
                    return channel
            cursor = (response.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return None

    def _build_context(
        self,
        payload: Payload,
        *,
        user: User,
        channel: Channel,
        chat_tool: dict[str, Any],
    ) -> ChatContextData:
        return ChatContextData(
            payload=payload,
            context=Context(
                chatting=Chatting(
                    bot=self._bot,
                    type=channel.chatting_type,
                    user=user,
                    channel=Name(id=channel.id, name=channel.name),
                ),
                chat_tool=ChatToolContext(
                    platform=ChatToolType.SLACK,
                    data={"client": self._web_client, **chat_tool},
                ),
            ),
        )

    async def process_message(self, event: dict[str, Any], body: dict[str, Any]) -> None:
        try:
            author_id = str(event.get("user") or "")
            if self._is_self(author_id):
                return
            bot_name = await self._ensure_bot_name()
            user = await self._resolve_user(author_id)
            channel = await self.get_channel_by_id(str(event.get("channel") or ""))
            text = normalize_message_text(
                event,
                bot_user_id=self._bot_user_id,
                bot_name=bot_name,
                chatting_type=channel.chatting_type,
            )
            chat_context_data = self._build_context(
                Payload(type=PayloadType.MESSAGE, data=text),
                user=user,
                channel=channel,
                chat_tool={"message": event, "body": body, "thread_ts": event.get("thread_ts")},
            )
            await self.dispatch_message(chat_context_data)
        except Exception as exc:
            log_event(self._logger, logging.ERROR, "slack.message.failed", exc=exc)

    async def process_action(self, body: dict[str, Any]) -> None:
        try:
            await self._ensure_bot_name()
            user = await self._resolve_user(str((body.get("user") or {}).get("id") or ""))
            channel = await self.get_channel_by_id(
                str((body.get("channel") or {}).get("id") or "")
            )
            event = parse_block_action_event(body, self._logger)
            await self._route_event(event, user=user, channel=channel, body=body)
        except Exception as exc:
            log_event(self._logger, logging.ERROR, "slack.action.failed", exc=exc)

    async def process_view_action(self, body: dict[str, Any]) -> None:
        try:
            await self._ensure_bot_name()
            user = await self._resolve_user(str((body.get("user") or {}).get("id") or ""))
            channel_id, event = parse_view_submission(body.get("view") or {})
            channel = await self.get_channel_by_id(channel_id)
            await self._route_event(event, user=user, channel=channel, body=body)
        except Exception as exc:
            log_event(self._logger, logging.ERROR, "slack.view.failed", exc=exc)

    async def _route_event(
        self, event: Event, *, user: User, channel: Channel, body: dict[str, Any]
    ) -> None:
        router = self._bot.router
        handler = router.handler if router is not None else None
        if handler is None:
            self._logger.error("Slack interaction received before route() was called")
            return
        chat_context_data = self._build_context(
            Payload(type=PayloadType.EVENT, data=event),
            user=user,
            channel=channel,
            chat_tool={"body": body},
        )
        log_event(
            self._logger,
            logging.INFO,
            "slack.action.dispatch",
            plugin_id=event.plugin_id,
            action_id=event.action.id,
            action_type=event.action.type.value,
        )
        await handler(chat_context_data)

    async def send(
        self, chat_context_data: ChatContextData, messages: Sequence[Message]
    ) -> OperationResult:
        channel = chat_context_data.context.chatting.channel
        try:
            channel_id = channel.id
            if chat_context_data.context.chat_tool is None and not channel_id and channel.name:
                found = await self.find_channel_by_name(channel.name)
                if found is None:
                    log_event(
                        self._logger,
                        logging.ERROR,
                        "slack.send.channel_not_found",
                        channel_name=channel.name,
                    )
                    return OperationResult.failure(
                        SlackAdapterError(
                            f"Channel not found: {channel.name}",
                            user_message="The specified channel does not exist.",
                        )
                    )
                channel_id = found.id
            for message in messages:
                await self._send_one(message, channel_id)
        except SlackApiError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "slack.send.api_error",
                error_code=exc.response.get("error") if exc.response else None,
                exc=exc,
            )
            return OperationResult.failure(exc)
        except Exception as exc:
            log_event(self._logger, logging.ERROR, "slack.send.failed", exc=exc)
            return OperationResult.failure(exc)
        return OperationResult.success()

    async def _send_one(self, message: Message, channel_id: str) -> None:
        if message.type == MessageType.SLACK_VIEW_OPEN:
            await self._web_client.views_open(**message.message)
        elif message.type == MessageType.SLACK_VIEW_UPDATE:
            await self._web_client.views_update(**message.message)
        elif message.type == MessageType.PLAIN_TEXT:
            await self._web_client.chat_postMessage(channel=channel_id, text=message.message)
        else:
            payload = dict(message.message)
            if payload.get("text") is None:
                payload["text"] = DEFAULT_MESSAGE_TEXT
            payload.setdefault("channel", channel_id)
            await self._web_client.chat_postMessage(**payload)
