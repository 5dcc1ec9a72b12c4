from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import BackgroundTasks, Request
from fastapi.responses import JSONResponse, Response

from ...core.logging_utils import log_event
from ...core.router import Router
from ...core.types import (
    ActionType,
    ChatContextData,
    Chatting,
    ChattingType,
    ChatToolContext,
    Context,
    Event,
    EventAction,
    Name,
    Payload,
    PayloadType,
    User,
)

DIALOG_SUBMISSION = "dialog_submission"
DIALOG_OPEN_PREFIX = "DIALOG_OPEN_"


def parse_action_event(payload: dict[str, Any], logger: logging.Logger) -> Event:
    """Decode the plugin/action/token triple of an interactive callback."""
    if payload.get("type") == DIALOG_SUBMISSION:
        segments = str(payload.get("state") or "").split(":")
        if len(segments) >= 3:
            plugin_id, action_id, token = segments[0], segments[1], segments[2]
        else:
            log_event(
                logger,
                logging.ERROR,
                "mattermost.action.bad_state",
                state=payload.get("state"),
            )
            plugin_id, action_id, token = "", "", ""
        return Event(
            plugin_id=plugin_id,
            action=EventAction(id=action_id, type=ActionType.DIALOG_SUBMIT, token=token),
        )

    context = payload.get("context") or {}
    action = context.get("action") or {}
    action_id = str(action.get("id") or "")
    component = payload.get("type")
    if component == "select":
        action_type = ActionType.DROPDOWN_SELECT
    elif component == "button":
        declared = action.get("type")
        if declared is not None:
            try:
                action_type = ActionType(declared)
            except ValueError:
                action_type = ActionType.UNSUPPORTED
        elif action_id.startswith(DIALOG_OPEN_PREFIX):
            action_type = ActionType.DIALOG_OPEN
        else:
            action_type = ActionType.BUTTON_CLICK
    else:
        action_type = ActionType.UNSUPPORTED
        log_event(
            logger,
            logging.ERROR,
            "mattermost.action.unsupported",
            component=component,
        )
    return Event(
        plugin_id=str(context.get("pluginId") or ""),
        action=EventAction(
            id=action_id, type=action_type, token=str(action.get("token") or "")
        ),
    )


class MattermostRouter(Router):
    """Receives interactive message and dialog callbacks over HTTP POST."""

    async def wire(self, path: str) -> None:
        self.mount_post(path, self.endpoint)

    async def endpoint(
        self, request: Request, background_tasks: BackgroundTasks
    ) -> Response:
        try:
            payload = await request.json()
        except ValueError as exc:
            log_event(
                self._logger, logging.WARNING, "mattermost.payload.malformed", exc=exc
            )
            return JSONResponse({"error": "invalid JSON"}, status_code=400)
        if not isinstance(payload, dict):
            return JSONResponse({"error": "payload must be an object"}, status_code=400)
        # Answer before normalizing; the server times out slow interactions.
        background_tasks.add_task(self.process_action, payload)
        if payload.get("type") == DIALOG_SUBMISSION:
            return Response(status_code=204)
        return JSONResponse({})

    async def process_action(self, payload: dict[str, Any]) -> None:
        try:
            await self._process_action(payload)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.action.failed",
                exc=exc,
            )

    async def _process_action(self, payload: dict[str, Any]) -> None:
        handler = self.handler
        if handler is None:
            self._logger.error("Interactive callback received before route() was called")
            return
        event = parse_action_event(payload, self._logger)
        context = payload.get("context") or {}
        root_id = str(context.get("rootId") or "")
        channel_id = str(payload.get("channel_id") or "")
        user_id = str(payload.get("user_id") or "")

        user: Optional[User] = None
        chatting_type = ChattingType.UNKNOWN
        middleware = self._bot.middleware
        if middleware is not None:
            user = await middleware.get_user_by_id(user_id)  # type: ignore[attr-defined]
            channel = await middleware.get_channel_by_id(channel_id)  # type: ignore[attr-defined]
            if channel is not None:
                chatting_type = channel.chatting_type

        chat_context_data = ChatContextData(
            payload=Payload(type=PayloadType.EVENT, data=event),
            context=Context(
                chatting=Chatting(
                    bot=self._bot,
                    type=chatting_type,
                    user=User(
                        id=user_id,
                        name=user.name if user else "",
                        email=user.email if user else "",
                    ),
                    channel=Name(id=channel_id, name=str(payload.get("channel_name") or "")),
                    team=Name(
                        id=str(payload.get("team_id") or ""),
                        name=str(payload.get("team_domain") or ""),
                    ),
                ),
                chat_tool=ChatToolContext(
                    platform=self._bot.option.chat_tool.type,
                    data={"channel_id": channel_id, "root_id": root_id, "body": payload},
                ),
            ),
        )
        log_event(
            self._logger,
            logging.INFO,
            "mattermost.action.dispatch",
            plugin_id=event.plugin_id,
            action_id=event.action.id,
            action_type=event.action.type.value,
        )
        await handler(chat_context_data)
