from __future__ import annotations

import pytest

from commonbot.core.command import (
    Adjective,
    Command,
    parse_command,
    serialize_command,
)


def test_parse_full_command() -> None:
    command = parse_command("@zbot:zos:job:list:status:id=123|owner=ibmuser:active")

    assert command.bot_user_name == "zbot"
    assert (command.scope, command.resource, command.verb, command.object) == (
        "zos",
        "job",
        "list",
        "status",
    )
    assert command.adjective.option == {"id": "123", "owner": "ibmuser"}
    assert command.adjective.arguments == ["active"]


def test_missing_trailing_segments_default_to_empty() -> None:
    command = parse_command("@zbot:zos:job")

    assert command.scope == "zos"
    assert command.resource == "job"
    assert command.verb == ""
    assert command.object == ""
    assert command.adjective == Adjective()


def test_option_value_keeps_later_equals_signs() -> None:
    command = parse_command("@zbot:zos:job:list:status:filter=a=b")

    assert command.adjective.option == {"filter": "a=b"}


@pytest.mark.parametrize("text", [None, "", "   "])
def test_blank_text_yields_empty_command(text) -> None:
    command = parse_command(text)

    assert command.scope == ""
    assert command.bot_user_name == ""


def test_serialize_round_trips() -> None:
    original = Command(
        scope="zos",
        resource="dataset",
        verb="list",
        object="member",
        adjective=Adjective(
            arguments=["SYS1.PARMLIB"], option={"limit": "10", "sort": "name"}
        ),
        extra_data={"bot_user_name": "zbot"},
    )

    text = serialize_command(original)

    assert text == "@zbot:zos:dataset:list:member:SYS1.PARMLIB:limit=10|sort=name"
    assert parse_command(text) == original


def test_serialize_rejects_separator_in_option() -> None:
    command = Command(
        scope="zos",
        resource="job",
        verb="list",
        object="status",
        adjective=Adjective(option={"id": "a|b"}),
    )

    with pytest.raises(ValueError):
        serialize_command(command, bot_user_name="zbot")
