from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence

from ...core.logging_utils import log_event
from ...core.middleware import Middleware
from ...core.types import (
    ChatContextData,
    Chatting,
    ChattingType,
    ChatToolContext,
    ChatToolType,
    Channel,
    Context,
    Message,
    MessageType,
    Name,
    OperationResult,
    Payload,
    PayloadType,
    User,
)
from .client import MattermostClient
from .errors import MattermostAPIError, MattermostPermanentError

if TYPE_CHECKING:
    from ...bot import CommonBot
    from ...core.config import MattermostOption


class MattermostMiddleware(Middleware):
    chat_tool_type = ChatToolType.MATTERMOST
    client_class: type[MattermostClient] = MattermostClient

    def __init__(self, bot: "CommonBot", *, logger: Optional[logging.Logger] = None):
        super().__init__(bot, logger=logger)
        self._client: Optional[MattermostClient] = None

    @property
    def client(self) -> Optional[MattermostClient]:
        return self._client

    @property
    def option(self) -> "MattermostOption":
        return self._bot.option.chat_tool.option  # type: ignore[return-value]

    def create_client(self) -> MattermostClient:
        return self.client_class(self, self.option, logger=self._logger)

    async def run(self) -> None:
        self._client = self.create_client()
        if self.option.bot_access_token:
            await self._client.connect()
        else:
            self._logger.warning(
                "No bot access token configured; %s connection not started",
                self.chat_tool_type.value,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    async def send(
        self, chat_context_data: ChatContextData, messages: Sequence[Message]
    ) -> OperationResult:
        client = self._client
        if client is None:
            error = MattermostPermanentError("Middleware is not running")
            log_event(self._logger, logging.ERROR, "mattermost.send.not_running")
            return OperationResult.failure(error)
        chatting = chat_context_data.context.chatting
        chat_tool = chat_context_data.context.chat_tool
        failure: Optional[BaseException] = None
        try:
            for message in messages:
                if message.type == MessageType.MATTERMOST_DIALOG_OPEN:
                    response = await client.open_dialog(message.message)
                    if not response.ok:
                        failure = response.to_error("open dialog")
                    break

                if chat_tool is not None:
                    channel_id = chatting.channel.id
                    root_id = str(chat_tool.get("root_id") or "")
                else:
                    root_id = ""
                    resolved = await self._resolve_channel_id(client, chatting.channel)
                    if resolved is None:
                        return OperationResult.failure(
                            MattermostPermanentError(
                                f"Channel not found: {chatting.channel.name}",
                                status_code=404,
                                user_message="The specified channel does not exist.",
                            )
                        )
                    channel_id = resolved
                log_event(
                    self._logger,
                    logging.INFO,
                    "mattermost.send",
                    proactive=chat_tool is None,
                    channel_id=channel_id,
                    message_type=message.type.value,
                )
                response = await client.send_message(message.message, channel_id, root_id)
                if response.status_code not in (200, 201):
                    failure = response.to_error("send message")
        except Exception as exc:
            log_event(self._logger, logging.ERROR, "mattermost.send.failed", exc=exc)
            return OperationResult.failure(exc)
        if failure is not None:
            return OperationResult.failure(failure)
        return OperationResult.success()

    async def _resolve_channel_id(
        self, client: MattermostClient, channel: Name
    ) -> Optional[str]:
        if channel.id == "" and channel.name != "":
            info = await client.get_channel_by_name(channel.name)
            if info is None:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "mattermost.send.channel_not_found",
                    channel_name=channel.name,
                )
                return None
            return info.id
        return channel.id

    def load_post(self, data: dict[str, Any]) -> dict[str, Any]:
        post = json.loads(data["post"])
        if not isinstance(post, dict):
            raise MattermostAPIError("Mattermost post payload must be a JSON object")
        return post

    async def process_message(self, raw_message: dict[str, Any]) -> None:
        try:
            await self._process_message(raw_message)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.message.failed",
                chat_tool=self.chat_tool_type.value,
                exc=exc,
            )

    async def _process_message(self, raw_message: dict[str, Any]) -> None:
        data = raw_message.get("data") or {}
        post = self.load_post(data)
        author_id = post.get("user_id")
        if self._is_self(author_id):
            return

        user = self.cached_user(author_id)
        if user is None and self._client is not None:
            user = await self._client.get_user_by_id(author_id)

        channel_type = data.get("channel_type")
        if channel_type is not None and self._client is not None:
            chatting_type = self._client.get_chatting_type(channel_type)
        else:
            self._logger.error("Inbound event is missing data.channel_type")
            chatting_type = ChattingType.UNKNOWN

        text = str(post.get("message") or "")
        bot_name = self._bot_user.name if self._bot_user is not None else ""
        if chatting_type == ChattingType.PERSONAL and not text.strip().startswith("@"):
            text = f"@{bot_name} {text}"

        if user is not None:
            sender = User(id=author_id, name=user.name, email=user.email)
        else:
            sender_name = str(data.get("sender_name") or "").strip()
            sender = User(id=author_id, name=sender_name[1:], email="")

        chat_context_data = ChatContextData(
            payload=Payload(type=PayloadType.MESSAGE, data=text),
            context=Context(
                chatting=Chatting(
                    bot=self._bot,
                    type=chatting_type,
                    user=sender,
                    channel=Name(
                        id=str(post.get("channel_id", "")),
                        name=str(data.get("channel_name", "")),
                    ),
                    team=Name(id=str(data.get("team_id", "")), name=""),
                    tenant=Name(),
                ),
                chat_tool=ChatToolContext(
                    platform=self.chat_tool_type,
                    data={"root_id": post.get("root_id", ""), "post": post},
                ),
            ),
        )
        await self.dispatch_message(chat_context_data)

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        user = self.cached_user(user_id)
        if user is None and self._client is not None:
            user = await self._client.get_user_by_id(user_id)
        return user

    async def get_channel_by_id(self, channel_id: str) -> Optional[Channel]:
        if self._client is None:
            return None
        return await self._client.get_channel_by_id(channel_id)
