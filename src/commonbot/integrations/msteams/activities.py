"""Pure helpers over Bot Framework activity dictionaries."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ...core.logging_utils import log_event
from ...core.types import ActionType, ChattingType, Event, EventAction

DIALOG_OPEN_PREFIX = "DIALOG_OPEN_"
ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"
TASK_FETCH = "task/fetch"
TASK_SUBMIT = "task/submit"

_CONVERSATION_TYPES = {
    "channel": ChattingType.PUBLIC_CHANNEL,
    "personal": ChattingType.PERSONAL,
    "groupChat": ChattingType.GROUP,
}


def chatting_type_from_conversation_type(
    conversation_type: Optional[str],
) -> ChattingType:
    return _CONVERSATION_TYPES.get(conversation_type or "", ChattingType.UNKNOWN)


def remove_recipient_mention(activity: dict[str, Any]) -> str:
    """Activity text with every ``<at>`` mention of the receiving bot removed."""
    text = str(activity.get("text") or "")
    recipient_id = (activity.get("recipient") or {}).get("id")
    for entity in activity.get("entities") or ():
        if not isinstance(entity, dict) or entity.get("type") != "mention":
            continue
        if (entity.get("mentioned") or {}).get("id") != recipient_id:
            continue
        mention_text = entity.get("text")
        if mention_text:
            text = text.replace(str(mention_text), "")
    return text.strip()


def channel_data(activity: dict[str, Any]) -> dict[str, Any]:
    data = activity.get("channelData")
    return data if isinstance(data, dict) else {}


def nested_id(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if isinstance(value, dict):
        return str(value.get("id") or "")
    return ""


def service_url_cache_key(
    activity: dict[str, Any], chatting_type: ChattingType
) -> Optional[str]:
    """Channel id for team channels, user id for 1:1 chats, conversation id for groups."""
    if chatting_type == ChattingType.PUBLIC_CHANNEL:
        return nested_id(channel_data(activity), "channel") or None
    if chatting_type == ChattingType.PERSONAL:
        return nested_id(activity, "from") or None
    if chatting_type == ChattingType.GROUP:
        return nested_id(activity, "conversation") or None
    return None


def parse_button_event(value: dict[str, Any], logger: logging.Logger) -> Event:
    action = value.get("action") or {}
    action_id = str(action.get("id") or "")
    declared = action.get("type")
    if declared is not None:
        try:
            action_type = ActionType(declared)
        except ValueError:
            log_event(
                logger,
                logging.ERROR,
                "msteams.action.unsupported",
                action_type=declared,
            )
            action_type = ActionType.UNSUPPORTED
    elif action_id.startswith(DIALOG_OPEN_PREFIX):
        action_type = ActionType.DIALOG_OPEN
    else:
        action_type = ActionType.BUTTON_CLICK
    return Event(
        plugin_id=str(value.get("pluginId") or ""),
        action=EventAction(
            id=action_id, type=action_type, token=str(action.get("token") or "")
        ),
    )


def parse_task_event(value: dict[str, Any], name: str) -> Event:
    """Event for a task module invoke.

    Fetch requests carry the opening action under ``data.action``; submit
    requests carry flat ``actionId`` and ``token`` keys.
    """
    data = value.get("data") or {}
    if name == TASK_FETCH:
        action = data.get("action") or {}
        return Event(
            plugin_id=str(data.get("pluginId") or ""),
            action=EventAction(
                id=str(action.get("id") or ""),
                type=ActionType.DIALOG_OPEN,
                token=str(action.get("token") or ""),
            ),
        )
    return Event(
        plugin_id=str(data.get("pluginId") or ""),
        action=EventAction(
            id=str(data.get("actionId") or ""),
            type=ActionType.DIALOG_SUBMIT,
            token=str(data.get("token") or ""),
        ),
    )


def adaptive_card_attachment(card: Any) -> dict[str, Any]:
    return {"contentType": ADAPTIVE_CARD_CONTENT_TYPE, "content": card}


def build_outbound_activity(
    text: str,
    attachments: list[dict[str, Any]],
    entities: list[dict[str, Any]],
) -> Optional[dict[str, Any]]:
    if not text and not attachments:
        return None
    activity: dict[str, Any] = {"type": "message"}
    if text:
        activity["text"] = text
    if attachments:
        activity["attachments"] = attachments
    if entities:
        activity["entities"] = entities
    return activity


def mention_entity(mentioned_id: str, mentioned_name: str) -> dict[str, Any]:
    return {
        "type": "mention",
        "mentioned": {"id": mentioned_id, "name": mentioned_name},
        "text": f"<at>{mentioned_name}</at>",
    }
