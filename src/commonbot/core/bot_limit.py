"""Per-platform ceilings consulted by outbound message formatting."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional, Union

from .types import ChatToolType

MATTERMOST_MAX_MESSAGE_LENGTH = 16383
SLACK_MAX_MESSAGE_LENGTH = 40000
MSTEAMS_MAX_MESSAGE_LENGTH = 28 * 1024


@dataclass(frozen=True)
class MattermostBotLimit:
    message_max_length: int = MATTERMOST_MAX_MESSAGE_LENGTH


@dataclass(frozen=True)
class SlackBotLimit:
    message_max_length: int = SLACK_MAX_MESSAGE_LENGTH
    block_id_max_length: int = 255
    action_block_elements_max_number: int = 25
    context_block_elements_max_number: int = 10
    header_block_text_max_length: int = 150
    image_block_url_max_length: int = 3000
    image_block_alt_text_max_length: int = 2000
    image_block_title_text_max_length: int = 2000
    input_block_label_text_max_length: int = 2000
    input_block_hint_text_max_length: int = 2000
    section_block_text_max_length: int = 3000
    section_block_fields_max_number: int = 10
    section_block_fields_text_max_length: int = 2000
    video_block_author_name_max_length: int = 50
    video_block_title_text_max_length: int = 200


@dataclass(frozen=True)
class MsteamsBotLimit:
    message_max_length: int = MSTEAMS_MAX_MESSAGE_LENGTH
    file_attachment_max_number: int = 10


BotLimitValue = Union[MattermostBotLimit, SlackBotLimit, MsteamsBotLimit]

_LIMITS: dict[ChatToolType, BotLimitValue] = {
    ChatToolType.MATTERMOST: MattermostBotLimit(),
    ChatToolType.DUMMY: MattermostBotLimit(),
    ChatToolType.SLACK: SlackBotLimit(),
    ChatToolType.MSTEAMS: MsteamsBotLimit(),
}


class BotLimit:
    """Static lookup of platform limits."""

    @staticmethod
    def get(chat_tool: Union[ChatToolType, str]) -> Optional[BotLimitValue]:
        try:
            tool = ChatToolType(chat_tool)
        except ValueError:
            return None
        return _LIMITS.get(tool)

    @staticmethod
    def as_dict(chat_tool: Union[ChatToolType, str]) -> dict[str, Any]:
        limit = BotLimit.get(chat_tool)
        return asdict(limit) if limit is not None else {}


def truncate_message(text: str, limit: Optional[BotLimitValue], suffix: str = "...") -> str:
    """Clip ``text`` to the platform message length, keeping ``suffix`` visible."""
    if limit is None or len(text) <= limit.message_max_length:
        return text
    keep = max(limit.message_max_length - len(suffix), 0)
    return text[:keep] + suffix[: limit.message_max_length - keep]
