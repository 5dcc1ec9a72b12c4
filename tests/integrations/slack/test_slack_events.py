from __future__ import annotations

import json
import logging

import pytest

from commonbot.core.types import ActionType, ChattingType
from commonbot.integrations.slack import (
    chatting_type_from_conversation,
    normalize_message_text,
    parse_block_action_event,
    parse_view_submission,
    rebuild_rich_text,
)
from commonbot.integrations.slack.events import should_ignore_message

LOGGER = logging.getLogger("test.slack.events")


@pytest.mark.parametrize(
    ("channel", "expected"),
    [
        ({"is_channel": True, "is_mpim": False}, ChattingType.PUBLIC_CHANNEL),
        ({"is_group": True}, ChattingType.PRIVATE_CHANNEL),
        ({"is_im": True}, ChattingType.PERSONAL),
        ({"is_mpim": True}, ChattingType.GROUP),
        ({}, ChattingType.UNKNOWN),
    ],
)
def test_chatting_type_from_conversation(channel, expected) -> None:
    assert chatting_type_from_conversation(channel) == expected


def test_rebuild_rich_text_spells_out_bot_mention() -> None:
    blocks = [
        {"type": "section"},
        {
            "type": "rich_text",
            "elements": [
                {
                    "type": "rich_text_section",
                    "elements": [
                        {"type": "user", "user_id": "UBOT"},
                        {"type": "text", "text": " see "},
                        {"type": "link", "url": "https://example.com"},
                        {"type": "user", "user_id": "UOTHER"},
                    ],
                }
            ],
        },
    ]

    assert rebuild_rich_text(blocks, "UBOT", "zbot") == "@zbot see https://example.com"
    assert rebuild_rich_text(None, "UBOT", "zbot") == ""


def test_normalize_message_text_prefixes_direct_messages() -> None:
    channel_text = normalize_message_text(
        {"text": "<@UBOT> deploy"},
        bot_user_id="UBOT",
        bot_name="zbot",
        chatting_type=ChattingType.PUBLIC_CHANNEL,
    )
    direct_text = normalize_message_text(
        {"text": "deploy"},
        bot_user_id="UBOT",
        bot_name="zbot",
        chatting_type=ChattingType.PERSONAL,
    )

    assert channel_text == "@zbot deploy"
    assert direct_text == "@zbot deploy"


def test_bot_and_edit_subtypes_are_ignored() -> None:
    assert should_ignore_message({"subtype": "bot_message"})
    assert should_ignore_message({"subtype": "message_changed"})
    assert not should_ignore_message({"text": "hi"})


def test_parse_block_action_event() -> None:
    button = parse_block_action_event(
        {"actions": [{"type": "button", "action_id": "deploy:DIALOG_OPEN_x:tok"}]},
        LOGGER,
    )
    select = parse_block_action_event(
        {"actions": [{"type": "static_select", "action_id": "deploy:env:tok"}]},
        LOGGER,
    )
    malformed = parse_block_action_event(
        {"actions": [{"type": "overflow", "action_id": "nope"}]}, LOGGER
    )

    assert button.plugin_id == "deploy"
    assert button.action.type == ActionType.DIALOG_OPEN
    assert button.action.token == "tok"
    assert select.action.type == ActionType.DROPDOWN_SELECT
    assert select.action.id == "env"
    assert malformed.action.type == ActionType.UNSUPPORTED
    assert malformed.plugin_id == ""


def test_parse_view_submission_reads_private_metadata() -> None:
    channel_id, event = parse_view_submission(
        {
            "private_metadata": json.dumps(
                {
                    "channelId": "C1",
                    "pluginId": "deploy",
                    "action": {"id": "confirm", "token": "tok"},
                }
            )
        }
    )

    assert channel_id == "C1"
    assert event.plugin_id == "deploy"
    assert event.action.type == ActionType.DIALOG_SUBMIT
    assert event.action.id == "confirm"
