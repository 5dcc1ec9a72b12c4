from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import NoReturn, Optional

import typer
import uvicorn

from ...bot import CommonBot
from ...core.bot_limit import BotLimit
from ...core.command import parse_command
from ...core.config import LogConfig, MessagingApp, load_bot_option
from ...core.exceptions import ConfigError
from ...core.logging_utils import log_event, setup_rotating_logger
from ...core.types import ChatContextData, Message, MessageType
from ...integrations.dummy.server import build_dummy_server_app
from ..web.app import build_messaging_app

app = typer.Typer(add_completion=False)


def get_commonbot_version() -> str:
    import importlib.metadata

    try:
        return importlib.metadata.version("commonbot")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(f"commonbot {get_commonbot_version()}")
    raise typer.Exit(code=0)


@app.callback()
def _root(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    return


def main() -> None:
    """Entrypoint for CLI execution."""
    app()


def _process_logger(name: str) -> logging.Logger:
    try:
        return setup_rotating_logger(name, LogConfig.from_env())
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)


async def _run_echo_bot(
    config_path: Path, *, path: str, bot_logger: logging.Logger
) -> None:
    loaded = load_bot_option(config_path)
    messaging_app = build_messaging_app(loaded.messaging_app.option)
    option = replace(
        loaded,
        messaging_app=MessagingApp(option=loaded.messaging_app.option, app=messaging_app),
    )
    bot = CommonBot(option, logger=bot_logger)
    mention = f"@{option.chat_tool.option.bot_user_name}"

    def matcher(text: str) -> bool:
        return text.startswith(mention)

    async def reply(chat_context_data: ChatContextData) -> None:
        text = chat_context_data.message[len(mention):].strip()
        await bot.send(
            chat_context_data,
            [Message(type=MessageType.PLAIN_TEXT, message=text or "(empty)")],
        )

    async def on_action(chat_context_data: ChatContextData) -> None:
        event = chat_context_data.event
        log_event(
            bot_logger,
            logging.INFO,
            "echo.action",
            plugin_id=event.plugin_id if event else None,
            action_id=event.action.id if event else None,
        )

    listened = await bot.listen(matcher, reply)
    if not listened.ok:
        raise_exit(f"Failed to start listener: {listened.error}", cause=listened.error)
    await bot.route(path, on_action)

    app_option = option.messaging_app.option
    server = uvicorn.Server(
        uvicorn.Config(
            messaging_app,
            host=app_option.host_name,
            port=app_option.port,
            ssl_keyfile=app_option.tls_key,
            ssl_certfile=app_option.tls_cert,
        )
    )
    try:
        await server.serve()
    finally:
        await bot.close()


@app.command("echo")
def echo(
    config: Path = typer.Option(..., "--config", "-c", help="Bot option YAML file"),
    action_path: str = typer.Option(
        "/actions", "--action-path", help="Interactive callback path"
    ),
) -> None:
    """Run a bot that repeats every message addressed to it."""
    bot_logger = _process_logger("commonbot")
    try:
        asyncio.run(_run_echo_bot(config, path=action_path, bot_logger=bot_logger))
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)
    except KeyboardInterrupt:
        typer.echo("Echo bot stopped.")


@app.command("dummy-server")
def dummy_server(
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind"),
    port: int = typer.Option(8065, "--port", help="Port to bind"),
) -> None:
    """Serve the local chat platform stand-in."""
    server_logger = _process_logger("commonbot.dummy_server")
    typer.echo(f"Serving dummy chat server on http://{host}:{port}")
    uvicorn.run(build_dummy_server_app(logger=server_logger), host=host, port=port)


@app.command("parse-command")
def parse_command_cmd(text: str = typer.Argument(..., help="Command string")) -> None:
    command = parse_command(text)
    typer.echo(json.dumps(asdict(command), indent=2, sort_keys=True))


@app.command("limits")
def limits(chat_tool: str = typer.Argument(..., help="Chat tool type")) -> None:
    values = BotLimit.as_dict(chat_tool.strip().lower())
    if not values:
        raise_exit(f"Unknown chat tool: {chat_tool}")
    typer.echo(json.dumps(values, indent=2, sort_keys=True))
