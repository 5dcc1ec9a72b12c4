"""Pure helpers that turn Slack payload fragments into normalized values."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Optional

from ...core.logging_utils import log_event
from ...core.types import ActionType, ChattingType, Event, EventAction

DIALOG_OPEN_PREFIX = "DIALOG_OPEN_"
DEFAULT_MESSAGE_TEXT = "New message from Common bot"
IGNORED_MESSAGE_SUBTYPES = frozenset(
    {
        "bot_message",
        "message_changed",
        "message_deleted",
        "channel_join",
        "channel_leave",
    }
)


def chatting_type_from_conversation(channel: dict[str, Any]) -> ChattingType:
    if channel.get("is_channel") is True and channel.get("is_mpim") is False:
        return ChattingType.PUBLIC_CHANNEL
    if channel.get("is_group") is True:
        return ChattingType.PRIVATE_CHANNEL
    if channel.get("is_im") is True:
        return ChattingType.PERSONAL
    if channel.get("is_mpim") is True:
        return ChattingType.GROUP
    return ChattingType.UNKNOWN


def replace_bot_mention(text: str, bot_user_id: str, bot_name: str) -> str:
    if not bot_user_id:
        return text
    return text.replace(f"<@{bot_user_id}>", f"@{bot_name}")


def rebuild_rich_text(
    blocks: Optional[Iterable[dict[str, Any]]], bot_user_id: str, bot_name: str
) -> str:
    """Plain text of the first rich-text section, with the bot mention spelled out."""
    rebuilt = ""
    for block in blocks or ():
        if block.get("type") != "rich_text":
            continue
        for element in block.get("elements") or ():
            if element.get("type") != "rich_text_section":
                continue
            for item in element.get("elements") or ():
                kind = item.get("type")
                if kind == "user" and item.get("user_id") == bot_user_id:
                    rebuilt += f"@{bot_name}"
                elif kind == "text":
                    rebuilt += str(item.get("text", ""))
                elif kind == "link":
                    rebuilt += str(item.get("url", ""))
            break
        if rebuilt:
            break
    return rebuilt


def normalize_message_text(
    event: dict[str, Any],
    *,
    bot_user_id: str,
    bot_name: str,
    chatting_type: ChattingType,
) -> str:
    text = replace_bot_mention(str(event.get("text") or ""), bot_user_id, bot_name)
    rebuilt = rebuild_rich_text(event.get("blocks"), bot_user_id, bot_name)
    if rebuilt:
        text = rebuilt
    if chatting_type == ChattingType.PERSONAL and f"@{bot_name}" not in text:
        text = f"@{bot_name} {text}"
    return text


def should_ignore_message(event: dict[str, Any]) -> bool:
    return event.get("subtype") in IGNORED_MESSAGE_SUBTYPES


def parse_block_action_event(body: dict[str, Any], logger: logging.Logger) -> Event:
    actions = body.get("actions") or [{}]
    action = actions[0] if isinstance(actions[0], dict) else {}
    action_id = str(action.get("action_id") or "")
    segments = action_id.split(":")
    plugin_id, event_action_id, token = "", "", ""
    if len(segments) >= 3:
        plugin_id, event_action_id, token = segments[0], segments[1], segments[2]
    else:
        log_event(logger, logging.ERROR, "slack.action.bad_action_id", action_id=action_id)

    if body.get("type") == "view_submission":
        action_type = ActionType.DIALOG_SUBMIT
    elif action.get("type") == "static_select":
        action_type = ActionType.DROPDOWN_SELECT
    elif action.get("type") == "button":
        if event_action_id.startswith(DIALOG_OPEN_PREFIX):
            action_type = ActionType.DIALOG_OPEN
        else:
            action_type = ActionType.BUTTON_CLICK
    else:
        action_type = ActionType.UNSUPPORTED
        log_event(
            logger,
            logging.ERROR,
            "slack.action.unsupported",
            component=action.get("type"),
        )
    return Event(
        plugin_id=plugin_id,
        action=EventAction(id=event_action_id, type=action_type, token=token),
    )


def parse_view_submission(view: dict[str, Any]) -> tuple[str, Event]:
    """Return the originating channel id and the submit event from ``private_metadata``."""
    metadata = json.loads(view.get("private_metadata") or "{}")
    action = metadata.get("action") or {}
    return str(metadata.get("channelId") or ""), Event(
        plugin_id=str(metadata.get("pluginId") or ""),
        action=EventAction(
            id=str(action.get("id") or ""),
            type=ActionType.DIALOG_SUBMIT,
            token=str(action.get("token") or ""),
        ),
    )
