from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence

from fastapi import BackgroundTasks, Request
from fastapi.responses import JSONResponse, Response

from ...core.config import MsteamsOption
from ...core.exceptions import ConfigError
from ...core.logging_utils import log_event
from ...core.middleware import Middleware
from ...core.router import unmount_route
from ...core.types import (
    Channel,
    ChatContextData,
    Chatting,
    ChattingType,
    ChatToolContext,
    ChatToolType,
    Context,
    Mention,
    Message,
    MessageType,
    Name,
    OperationResult,
    Payload,
    PayloadType,
    User,
)
from .activities import (
    TASK_FETCH,
    TASK_SUBMIT,
    adaptive_card_attachment,
    build_outbound_activity,
    channel_data,
    chatting_type_from_conversation_type,
    mention_entity,
    nested_id,
    parse_button_event,
    parse_task_event,
    remove_recipient_mention,
    service_url_cache_key,
)
from .auth import BotFrameworkTokenValidator
from .connector import BotFrameworkConnector
from .errors import MsteamsAPIError, MsteamsAuthError

if TYPE_CHECKING:
    from ...bot import CommonBot

TURN_ERROR_TEXT = (
    "The bot encountered an error or bug. "
    "To continue to run this bot, please fix the bot source code."
)


class MsteamsMiddleware(Middleware):
    """Microsoft Teams adapter driven by Bot Framework webhook activities.

    Service URLs are learned from inbound traffic only, so proactive sends
    work after the bot has seen at least one activity from the target scope.
    """

    chat_tool_type = ChatToolType.MSTEAMS

    def __init__(self, bot: "CommonBot", *, logger: Optional[logging.Logger] = None):
        super().__init__(bot, logger=logger)
        option = self.option
        self._connector = BotFrameworkConnector(
            option.bot_id, option.bot_password, logger=self._logger
        )
        self._validator: Optional[BotFrameworkTokenValidator] = None
        if option.verify_inbound_token:
            self._validator = BotFrameworkTokenValidator(
                option.bot_id, logger=self._logger
            )
        self._service_urls: dict[str, str] = {}
        self._channels: list[Channel] = []

    @property
    def option(self) -> MsteamsOption:
        return self._bot.option.chat_tool.option  # type: ignore[return-value]

    @property
    def connector(self) -> BotFrameworkConnector:
        return self._connector

    @property
    def service_urls(self) -> dict[str, str]:
        return dict(self._service_urls)

    @property
    def channels(self) -> list[Channel]:
        return list(self._channels)

    async def run(self) -> None:
        app = self._bot.option.messaging_app.app
        if app is None:
            raise ConfigError("messaging_app.app is required for Microsoft Teams")
        path = self.option.messages_path
        unmount_route(app, path, "POST")
        app.add_api_route(path, self.endpoint, methods=["POST"])
        log_event(self._logger, logging.INFO, "msteams.http.mounted", path=path)

    async def close(self) -> None:
        await self._connector.close()

    async def endpoint(
        self, request: Request, background_tasks: BackgroundTasks
    ) -> Response:
        if self._validator is not None:
            try:
                await self._validator.validate(request.headers.get("Authorization"))
            except MsteamsAuthError:
                return JSONResponse({"error": "unauthorized"}, status_code=401)
        try:
            activity = await request.json()
        except ValueError as exc:
            log_event(
                self._logger, logging.WARNING, "msteams.payload.malformed", exc=exc
            )
            return JSONResponse({"error": "invalid JSON"}, status_code=400)
        if not isinstance(activity, dict):
            return JSONResponse({"error": "activity must be an object"}, status_code=400)
        kind = activity.get("type")
        if kind == "invoke" and activity.get("name") in (TASK_FETCH, TASK_SUBMIT):
            body = await self.process_task(activity)
            return JSONResponse(body if body is not None else {})
        if kind == "message":
            background_tasks.add_task(self.process_activity, activity)
        elif kind == "conversationUpdate":
            background_tasks.add_task(self.update_conversation, activity)
        else:
            self._logger.debug("Ignoring Teams activity type %s", kind)
        return Response(status_code=200)

    def cache_service_url(self, key: str, service_url: str) -> None:
        if self._service_urls.get(key) != service_url:
            log_event(
                self._logger,
                logging.INFO,
                "msteams.service_url.cached",
                key=key,
                service_url=service_url,
            )
            self._service_urls[key] = service_url

    def find_service_url(self, key: str) -> str:
        return self._service_urls.get(key, "")

    def find_channel_by_name(self, name: str) -> Optional[Channel]:
        for channel in self._channels:
            if channel.name == name:
                return channel
        return None

    def find_channel_by_id(self, channel_id: str) -> Optional[Channel]:
        for channel in self._channels:
            if channel.id == channel_id:
                return channel
        return None

    async def refresh_team_channels(self, service_url: str, team_id: str) -> None:
        if not team_id:
            return
        raws = await self._connector.get_team_channels(service_url, team_id)
        self._channels = [
            Channel(
                id=str(raw.get("id") or ""),
                name=str(raw.get("name") or ""),
                chatting_type=ChattingType.PUBLIC_CHANNEL,
            )
            for raw in raws
        ]

    async def process_turn_error(self, activity: dict[str, Any], exc: Exception) -> None:
        log_event(
            self._logger,
            logging.ERROR,
            "msteams.turn.failed",
            activity_id=activity.get("id"),
            activity_type=activity.get("type"),
            exc=exc,
        )
        try:
            await self._reply(activity, {"type": "message", "text": TURN_ERROR_TEXT})
        except Exception as reply_exc:
            log_event(
                self._logger,
                logging.ERROR,
                "msteams.turn.error_reply_failed",
                exc=reply_exc,
            )

    async def update_conversation(self, activity: dict[str, Any]) -> None:
        try:
            service_url = str(activity.get("serviceUrl") or "")
            data = channel_data(activity)
            key = nested_id(data, "channel") or nested_id(activity, "conversation")
            if key:
                self.cache_service_url(key, service_url)
            await self.refresh_team_channels(service_url, nested_id(data, "team"))
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "msteams.conversation_update.failed",
                exc=exc,
            )

    async def process_activity(self, activity: dict[str, Any]) -> None:
        try:
            await self._process_message(activity)
        except Exception as exc:
            await self.process_turn_error(activity, exc)

    def _remember_recipient(self, activity: dict[str, Any]) -> None:
        recipient = activity.get("recipient") or {}
        recipient_id = str(recipient.get("id") or "")
        if recipient_id:
            self.update_bot_user(
                User(id=recipient_id, name=str(recipient.get("name") or ""))
            )

    async def _process_message(self, activity: dict[str, Any]) -> None:
        self._remember_recipient(activity)
        if self._is_self(nested_id(activity, "from") or None):
            return
        text = remove_recipient_mention(activity)
        conversation = activity.get("conversation") or {}
        conversation_type = conversation.get("conversationType")
        chatting_type = chatting_type_from_conversation_type(conversation_type)
        key = service_url_cache_key(activity, chatting_type)
        if key is None:
            log_event(
                self._logger,
                logging.ERROR,
                "msteams.service_url.uncached",
                conversation_type=conversation_type,
            )
            return
        service_url = str(activity.get("serviceUrl") or "")
        self.cache_service_url(key, service_url)
        if conversation_type == "channel":
            await self.refresh_team_channels(
                service_url, nested_id(channel_data(activity), "team")
            )

        user = await self._resolve_user(activity)
        value = activity.get("value")
        if isinstance(value, dict) and activity.get("text") is None:
            event = parse_button_event(value, self._logger)
            handler = self._route_handler()
            if handler is None:
                return
            await handler(
                self._build_context(
                    activity,
                    Payload(type=PayloadType.EVENT, data=event),
                    chatting_type=chatting_type,
                    user=user,
                )
            )
            return

        recipient_name = str((activity.get("recipient") or {}).get("name") or "")
        await self.dispatch_message(
            self._build_context(
                activity,
                Payload(type=PayloadType.MESSAGE, data=f"@{recipient_name} {text}"),
                chatting_type=chatting_type,
                user=user,
            )
        )

    async def process_task(self, activity: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Answer a task module fetch or submit with the route handler's result."""
        try:
            return await self._process_task(activity)
        except Exception as exc:
            await self.process_turn_error(activity, exc)
            return None

    async def _process_task(self, activity: dict[str, Any]) -> Optional[dict[str, Any]]:
        name = str(activity.get("name") or "")
        value = activity.get("value") if isinstance(activity.get("value"), dict) else {}
        user = await self._resolve_user(activity)
        chatting_type = chatting_type_from_conversation_type(
            (activity.get("conversation") or {}).get("conversationType")
        )
        handler = self._route_handler()
        if handler is None:
            return None
        event = parse_task_event(value, name)
        result = await handler(
            self._build_context(
                activity,
                Payload(type=PayloadType.EVENT, data=event),
                chatting_type=chatting_type,
                user=user,
                extra={
                    "action_type": "taskFetch" if name == TASK_FETCH else "taskSubmit",
                    "data": value.get("data"),
                },
            )
        )
        if name == TASK_FETCH:
            if isinstance(result, dict) and result.get("card") is not None:
                result = {**result, "card": adaptive_card_attachment(result["card"])}
        elif result is None:
            return None
        return {"task": {"type": "continue", "value": result}}

    def _route_handler(self) -> Any:
        router = self._bot.router
        handler = router.handler if router is not None else None
        if handler is None:
            self._logger.error("Teams interaction received before route() was called")
        return handler

    async def _resolve_user(self, activity: dict[str, Any]) -> User:
        sender = activity.get("from") or {}
        user_id = str(sender.get("id") or "")
        user = self.cached_user(user_id)
        if user is not None:
            return user
        member = await self._connector.get_member(
            str(activity.get("serviceUrl") or ""),
            nested_id(activity, "conversation"),
            user_id,
        )
        user = User(
            id=user_id,
            name=str(sender.get("name") or member.get("name") or ""),
            email=str(member.get("email") or ""),
        )
        if user_id.strip():
            self.add_user(user_id, user)
        return user

    def _build_context(
        self,
        activity: dict[str, Any],
        payload: Payload,
        *,
        chatting_type: ChattingType,
        user: User,
        extra: Optional[dict[str, Any]] = None,
    ) -> ChatContextData:
        data = channel_data(activity)
        return ChatContextData(
            payload=payload,
            context=Context(
                chatting=Chatting(
                    bot=self._bot,
                    type=chatting_type,
                    user=user,
                    channel=Name(id=nested_id(data, "channel")),
                    team=Name(id=nested_id(data, "team")),
                    tenant=Name(id=nested_id(data, "tenant")),
                ),
                chat_tool=ChatToolContext(
                    platform=ChatToolType.MSTEAMS,
                    data={
                        "activity": activity,
                        "service_url": str(activity.get("serviceUrl") or ""),
                        **(extra or {}),
                    },
                ),
            ),
        )

    async def _reply(self, activity: dict[str, Any], outbound: dict[str, Any]) -> None:
        await self._connector.send_to_conversation(
            str(activity.get("serviceUrl") or ""),
            nested_id(activity, "conversation"),
            outbound,
        )

    def _resolve_mention(self, mention: Mention) -> Optional[dict[str, Any]]:
        mentioned_id = mention.id.strip()
        mentioned_name = mention.name.strip()
        if not mentioned_id and mentioned_name:
            channel = self.find_channel_by_name(mentioned_name)
            if channel is not None:
                mentioned_id = channel.id
        else:
            channel = self.find_channel_by_id(mentioned_id)
            if channel is not None:
                mentioned_name = channel.name
        if mentioned_id and mentioned_name:
            return mention_entity(mentioned_id, mentioned_name)
        return None

    async def send(
        self, chat_context_data: ChatContextData, messages: Sequence[Message]
    ) -> OperationResult:
        lines: list[str] = []
        attachments: list[dict[str, Any]] = []
        entities: list[dict[str, Any]] = []
        for message in messages:
            if message.type == MessageType.PLAIN_TEXT:
                lines.append(str(message.message))
            elif message.type == MessageType.MSTEAMS_ADAPTIVE_CARD:
                attachments.append(adaptive_card_attachment(message.message))
            else:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "msteams.send.unsupported_type",
                    message_type=message.type.value,
                )
                lines.append(json.dumps(message.message))
            for mention in message.mentions:
                entity = self._resolve_mention(mention)
                if entity is not None:
                    entities.append(entity)

        text = "\n".join(lines)
        activity = build_outbound_activity(text, attachments, entities)
        if activity is None:
            log_event(self._logger, logging.WARNING, "msteams.send.empty")
            return OperationResult.success()
        try:
            chat_tool = chat_context_data.context.chat_tool
            origin = chat_tool.get("activity") if chat_tool is not None else None
            if origin is not None:
                await self._reply(origin, activity)
                return OperationResult.success()
            return await self._send_proactive(
                chat_context_data, text, attachments, entities
            )
        except Exception as exc:
            log_event(self._logger, logging.ERROR, "msteams.send.failed", exc=exc)
            return OperationResult.failure(exc)

    async def _send_proactive(
        self,
        chat_context_data: ChatContextData,
        text: str,
        attachments: list[dict[str, Any]],
        entities: list[dict[str, Any]],
    ) -> OperationResult:
        if not self._service_urls:
            log_event(self._logger, logging.ERROR, "msteams.send.no_service_url")
            return OperationResult.failure(
                MsteamsAPIError(
                    "No cached Teams service URL",
                    user_message="Talk with the bot in Microsoft Teams first.",
                )
            )
        target = chat_context_data.context.chatting.channel
        if not target.id and target.name:
            channel = self.find_channel_by_name(target.name)
        else:
            channel = self.find_channel_by_id(target.id)
        if channel is None:
            log_event(
                self._logger,
                logging.ERROR,
                "msteams.send.channel_not_found",
                channel_id=target.id,
                channel_name=target.name,
            )
            return OperationResult.failure(
                MsteamsAPIError(
                    f"Teams channel not found: {target.id or target.name}",
                    status_code=404,
                    user_message="The specified channel does not exist.",
                )
            )
        service_url = self.find_service_url(channel.id)
        if not service_url:
            log_event(
                self._logger,
                logging.ERROR,
                "msteams.send.channel_service_url_missing",
                channel_id=channel.id,
            )
            return OperationResult.failure(
                MsteamsAPIError(f"No service URL cached for channel {channel.id}")
            )

        if text:
            first = build_outbound_activity(text, [], entities)
            remaining = attachments
        else:
            first = build_outbound_activity("", attachments[:1], entities)
            remaining = attachments[1:]
        created = await self._connector.create_conversation(
            service_url,
            {
                "isGroup": True,
                "channelData": {"channel": {"id": channel.id}},
                "activity": first,
            },
        )
        conversation_id = str(created.get("id") or "")
        if remaining:
            await self._connector.send_to_conversation(
                service_url,
                conversation_id,
                build_outbound_activity("", remaining, entities) or {},
            )
        log_event(
            self._logger,
            logging.INFO,
            "msteams.send.proactive",
            channel_id=channel.id,
            conversation_id=conversation_id,
        )
        return OperationResult.success()
