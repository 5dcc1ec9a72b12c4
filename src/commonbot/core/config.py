from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from .exceptions import ConfigError
from .types import ChatToolType, LogLevel, Protocol

DEFAULT_LOG_FILE_ENV = "COMMONBOT_LOG_FILE"
DEFAULT_LOG_LEVEL_ENV = "COMMONBOT_LOG_LEVEL"
DEFAULT_LOG_MAX_BYTES_ENV = "COMMONBOT_LOG_MAX_BYTES"
DEFAULT_LOG_BACKUP_COUNT_ENV = "COMMONBOT_LOG_BACKUP_COUNT"
DEFAULT_LOG_CONSOLE_ENV = "COMMONBOT_LOG_CONSOLE"
DEFAULT_LOG_FILE = "log/commonbot.log"
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT = 5

DEFAULT_MATTERMOST_TOKEN_ENV = "COMMONBOT_MATTERMOST_TOKEN"
DEFAULT_SLACK_TOKEN_ENV = "COMMONBOT_SLACK_TOKEN"
DEFAULT_SLACK_SIGNING_SECRET_ENV = "COMMONBOT_SLACK_SIGNING_SECRET"
DEFAULT_SLACK_APP_TOKEN_ENV = "COMMONBOT_SLACK_APP_TOKEN"
DEFAULT_MSTEAMS_PASSWORD_ENV = "COMMONBOT_MSTEAMS_PASSWORD"

_LOG_LEVELS = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.VERBOSE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.SILLY: logging.DEBUG,
}


def to_logging_level(level: Union[LogLevel, str]) -> int:
    raw = level.value if isinstance(level, LogLevel) else str(level).lower()
    try:
        return _LOG_LEVELS[LogLevel(raw)]
    except ValueError as exc:
        raise ConfigError(f"Unsupported log level: {level}") from exc


@dataclass(frozen=True)
class LogConfig:
    path: Path
    max_bytes: int
    backup_count: int
    level: int = logging.INFO
    console: bool = False

    @classmethod
    def from_env(
        cls, env: Optional[Mapping[str, str]] = None, *, root: Optional[Path] = None
    ) -> "LogConfig":
        """Resolve log settings once at process start."""
        values = os.environ if env is None else env
        base = root or Path.cwd()
        path_raw = values.get(DEFAULT_LOG_FILE_ENV) or DEFAULT_LOG_FILE
        path = Path(path_raw)
        if not path.is_absolute():
            path = base / path
        return cls(
            path=path,
            max_bytes=_parse_positive_int_or_default(
                values.get(DEFAULT_LOG_MAX_BYTES_ENV),
                default=DEFAULT_LOG_MAX_BYTES,
                key=DEFAULT_LOG_MAX_BYTES_ENV,
            ),
            backup_count=_parse_positive_int_or_default(
                values.get(DEFAULT_LOG_BACKUP_COUNT_ENV),
                default=DEFAULT_LOG_BACKUP_COUNT,
                key=DEFAULT_LOG_BACKUP_COUNT_ENV,
            ),
            level=to_logging_level(values.get(DEFAULT_LOG_LEVEL_ENV) or LogLevel.INFO),
            console=str(values.get(DEFAULT_LOG_CONSOLE_ENV, "")).lower()
            in {"1", "true", "yes"},
        )


@dataclass(frozen=True)
class MattermostOption:
    protocol: Protocol
    host_name: str
    port: int
    base_path: str
    team_url: str
    bot_user_name: str
    bot_access_token: Optional[str] = None
    tls_certificate: Optional[str] = None

    @classmethod
    def from_raw(
        cls, raw: Mapping[str, Any], *, env: Optional[Mapping[str, str]] = None
    ) -> "MattermostOption":
        values = os.environ if env is None else env
        token = raw.get("bot_access_token")
        if token is None:
            token_env = str(
                raw.get("bot_access_token_env", DEFAULT_MATTERMOST_TOKEN_ENV)
            ).strip()
            token = values.get(token_env) if token_env else None
        return cls(
            protocol=_parse_protocol(raw.get("protocol"), key="chat_tool.protocol"),
            host_name=_require_string(raw, "host_name", prefix="chat_tool"),
            port=_parse_port(raw.get("port"), key="chat_tool.port"),
            base_path=str(raw.get("base_path") or ""),
            team_url=str(raw.get("team_url") or ""),
            bot_user_name=_require_string(raw, "bot_user_name", prefix="chat_tool"),
            bot_access_token=str(token) if token else None,
            tls_certificate=_optional_string(raw.get("tls_certificate")),
        )

    @property
    def base_url(self) -> str:
        return f"{self.protocol.value}://{self.host_name}:{self.port}{self.base_path}"


@dataclass(frozen=True)
class HttpEndpoint:
    message_path: str = "/slack/events"
    action_path: str = "/slack/actions"


@dataclass(frozen=True)
class SlackOption:
    bot_user_name: str
    token: Optional[str]
    signing_secret: Optional[str] = None
    endpoints: HttpEndpoint = field(default_factory=HttpEndpoint)
    log_level: LogLevel = LogLevel.INFO
    socket_mode: bool = False
    app_token: Optional[str] = None

    @classmethod
    def from_raw(
        cls, raw: Mapping[str, Any], *, env: Optional[Mapping[str, str]] = None
    ) -> "SlackOption":
        values = os.environ if env is None else env
        socket_mode = _parse_bool_or_default(
            raw.get("socket_mode"), default=False, key="chat_tool.socket_mode"
        )
        token = _secret(raw, "token", DEFAULT_SLACK_TOKEN_ENV, values)
        signing_secret = _secret(
            raw, "signing_secret", DEFAULT_SLACK_SIGNING_SECRET_ENV, values
        )
        app_token = _secret(raw, "app_token", DEFAULT_SLACK_APP_TOKEN_ENV, values)
        if socket_mode and not app_token:
            raise ConfigError("chat_tool.app_token is required when socket_mode is on")
        if not socket_mode and not signing_secret:
            raise ConfigError(
                "chat_tool.signing_secret is required when socket_mode is off"
            )
        endpoints_raw = raw.get("endpoints")
        endpoints_cfg = endpoints_raw if isinstance(endpoints_raw, dict) else {}
        try:
            log_level = LogLevel(str(raw.get("log_level", LogLevel.INFO.value)))
        except ValueError as exc:
            raise ConfigError(f"Unsupported chat_tool.log_level: {exc}") from exc
        return cls(
            bot_user_name=_require_string(raw, "bot_user_name", prefix="chat_tool"),
            token=token,
            signing_secret=signing_secret,
            endpoints=HttpEndpoint(
                message_path=str(
                    endpoints_cfg.get("message_path", HttpEndpoint.message_path)
                ),
                action_path=str(
                    endpoints_cfg.get("action_path", HttpEndpoint.action_path)
                ),
            ),
            log_level=log_level,
            socket_mode=socket_mode,
            app_token=app_token,
        )


@dataclass(frozen=True)
class MsteamsOption:
    bot_user_name: str
    bot_id: str
    bot_password: Optional[str]
    messages_path: str = "/api/messages"
    verify_inbound_token: bool = True

    @classmethod
    def from_raw(
        cls, raw: Mapping[str, Any], *, env: Optional[Mapping[str, str]] = None
    ) -> "MsteamsOption":
        values = os.environ if env is None else env
        return cls(
            bot_user_name=_require_string(raw, "bot_user_name", prefix="chat_tool"),
            bot_id=_require_string(raw, "bot_id", prefix="chat_tool"),
            bot_password=_secret(
                raw, "bot_password", DEFAULT_MSTEAMS_PASSWORD_ENV, values
            ),
            messages_path=str(raw.get("messages_path") or "/api/messages"),
            verify_inbound_token=_parse_bool_or_default(
                raw.get("verify_inbound_token"),
                default=True,
                key="chat_tool.verify_inbound_token",
            ),
        )


ChatToolOption = Union[MattermostOption, SlackOption, MsteamsOption]


@dataclass(frozen=True)
class MessagingAppOption:
    protocol: Protocol = Protocol.HTTP
    host_name: str = "0.0.0.0"
    port: int = 8080
    base_path: str = "/"
    tls_key: Optional[str] = None
    tls_cert: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "MessagingAppOption":
        return cls(
            protocol=_parse_protocol(
                raw.get("protocol", Protocol.HTTP.value), key="messaging_app.protocol"
            ),
            host_name=str(raw.get("host_name") or "0.0.0.0"),
            port=_parse_port(raw.get("port", 8080), key="messaging_app.port"),
            base_path=str(raw.get("base_path") or "/"),
            tls_key=_optional_string(raw.get("tls_key")),
            tls_cert=_optional_string(raw.get("tls_cert")),
        )


@dataclass(frozen=True)
class MessagingApp:
    option: MessagingAppOption = field(default_factory=MessagingAppOption)
    app: Any = None


@dataclass(frozen=True)
class ChatTool:
    type: ChatToolType
    option: ChatToolOption


@dataclass(frozen=True)
class BotOption:
    messaging_app: MessagingApp
    chat_tool: ChatTool

    @classmethod
    def from_raw(
        cls,
        raw: Mapping[str, Any],
        *,
        app: Any = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "BotOption":
        cfg: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
        chat_raw = cfg.get("chat_tool")
        if not isinstance(chat_raw, Mapping):
            raise ConfigError("chat_tool must be a mapping")
        try:
            tool_type = ChatToolType(str(chat_raw.get("type", "")).strip().lower())
        except ValueError as exc:
            raise ConfigError(
                f"chat_tool.type must be one of "
                f"{', '.join(item.value for item in ChatToolType)}"
            ) from exc
        option_raw = chat_raw.get("option")
        option_cfg: Mapping[str, Any] = (
            option_raw if isinstance(option_raw, Mapping) else {}
        )
        option: ChatToolOption
        if tool_type in (ChatToolType.MATTERMOST, ChatToolType.DUMMY):
            option = MattermostOption.from_raw(option_cfg, env=env)
        elif tool_type == ChatToolType.SLACK:
            option = SlackOption.from_raw(option_cfg, env=env)
        else:
            option = MsteamsOption.from_raw(option_cfg, env=env)

        app_raw = cfg.get("messaging_app")
        app_cfg: Mapping[str, Any] = app_raw if isinstance(app_raw, Mapping) else {}
        app_option_raw = app_cfg.get("option", app_cfg)
        return cls(
            messaging_app=MessagingApp(
                option=MessagingAppOption.from_raw(
                    app_option_raw if isinstance(app_option_raw, Mapping) else {}
                ),
                app=app,
            ),
            chat_tool=ChatTool(type=tool_type, option=option),
        )


def load_yaml_dict(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping: {path}")
    return data


def load_bot_option(
    path: Path, *, app: Any = None, env: Optional[Mapping[str, str]] = None
) -> BotOption:
    return BotOption.from_raw(load_yaml_dict(path), app=app, env=env)


def _secret(
    raw: Mapping[str, Any], key: str, default_env: str, env: Mapping[str, str]
) -> Optional[str]:
    value = raw.get(key)
    if value:
        return str(value)
    env_name = str(raw.get(f"{key}_env", default_env)).strip()
    if not env_name:
        return None
    return env.get(env_name) or None


def _require_string(raw: Mapping[str, Any], key: str, *, prefix: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{prefix}.{key} must be a non-empty string")
    return value.strip()


def _optional_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_protocol(value: Any, *, key: str) -> Protocol:
    try:
        return Protocol(str(value).strip().lower())
    except ValueError as exc:
        raise ConfigError(f"{key} must be one of http, https, ws, wss") from exc


def _parse_port(value: Any, *, key: str) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer") from exc
    if not 0 < port < 65536:
        raise ConfigError(f"{key} must be between 1 and 65535")
    return port


def _parse_positive_int_or_default(value: Any, *, default: int, key: str) -> int:
    if value is None or value == "":
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        return default
    return parsed


def _parse_bool_or_default(value: Any, *, default: bool, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{key} must be a boolean")
