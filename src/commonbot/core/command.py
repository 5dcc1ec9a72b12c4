"""Colon-delimited command strings carried by messages and interactive payloads.

Wire format::

    @<bot>:<scope>:<resource>:<verb>:<object>[:<argument>...][:<key>=<value>|<key>=<value>]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .logging_utils import log_event

COMMAND_SEPARATOR = ":"
OPTION_SEPARATOR = "|"
OPTION_ASSIGN = "="
BOT_USER_NAME_KEY = "bot_user_name"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Adjective:
    arguments: list[str] = field(default_factory=list)
    option: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Command:
    scope: str = ""
    resource: str = ""
    verb: str = ""
    object: str = ""
    adjective: Adjective = field(default_factory=Adjective)
    extra_data: dict[str, Any] = field(default_factory=dict)

    @property
    def bot_user_name(self) -> str:
        return str(self.extra_data.get(BOT_USER_NAME_KEY, ""))


def parse_command(text: Optional[str]) -> Command:
    if text is None or not text.strip():
        return Command(extra_data={BOT_USER_NAME_KEY: ""})

    segments = text.strip().split(COMMAND_SEPARATOR)
    padded = segments + [""] * max(0, 5 - len(segments))
    adjective = Adjective()
    for token in segments[5:]:
        if not token.strip():
            continue
        if OPTION_ASSIGN in token:
            for option in token.split(OPTION_SEPARATOR):
                key, _, value = option.partition(OPTION_ASSIGN)
                adjective.option[key] = value
        else:
            adjective.arguments.append(token)

    command = Command(
        scope=padded[1],
        resource=padded[2],
        verb=padded[3],
        object=padded[4],
        adjective=adjective,
        extra_data={BOT_USER_NAME_KEY: segments[0][1:]},
    )
    log_event(
        logger,
        logging.DEBUG,
        "command.parsed",
        scope=command.scope,
        resource=command.resource,
        verb=command.verb,
        object=command.object,
        arguments=command.adjective.arguments,
        option=command.adjective.option,
    )
    return command


def serialize_command(command: Command, *, bot_user_name: Optional[str] = None) -> str:
    """Inverse of :func:`parse_command` for well-formed commands."""
    name = command.bot_user_name if bot_user_name is None else bot_user_name
    tokens = [
        f"@{name}",
        command.scope,
        command.resource,
        command.verb,
        command.object,
    ]
    for argument in command.adjective.arguments:
        if COMMAND_SEPARATOR in argument or OPTION_ASSIGN in argument:
            raise ValueError(f"argument cannot be serialized: {argument!r}")
        tokens.append(argument)
    options = []
    for key, value in command.adjective.option.items():
        for part in (key, value):
            if COMMAND_SEPARATOR in part or OPTION_SEPARATOR in part:
                raise ValueError(f"option cannot be serialized: {key!r}={value!r}")
        if OPTION_ASSIGN in key:
            raise ValueError(f"option key cannot contain '=': {key!r}")
        options.append(f"{key}{OPTION_ASSIGN}{value}")
    if options:
        tokens.append(OPTION_SEPARATOR.join(options))
    return COMMAND_SEPARATOR.join(tokens)
