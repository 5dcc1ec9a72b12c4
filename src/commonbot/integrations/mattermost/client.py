from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import ssl
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Union

import httpx
import websockets
from websockets.exceptions import ConnectionClosed

from ...core.config import MattermostOption
from ...core.logging_utils import log_event
from ...core.types import Channel, ChattingType, ConnectionStatus, Protocol, User
from .errors import MattermostAPIError, MattermostPermanentError, MattermostTransientError

if TYPE_CHECKING:
    from .middleware import MattermostMiddleware

DEFAULT_HEARTBEAT_SECONDS = 60.0
DEFAULT_RECONNECT_STEP_SECONDS = 2.0
DEFAULT_TIMEOUT_SECONDS = 10.0
HEARTBEAT_GRACE_FACTOR = 3

CHATTING_TYPES = {
    "D": ChattingType.PERSONAL,
    "O": ChattingType.PUBLIC_CHANNEL,
    "P": ChattingType.PRIVATE_CHANNEL,
    "G": ChattingType.GROUP,
}


@dataclass(frozen=True)
class RestResponse:
    """Normalized REST outcome; transport failures become synthetic statuses."""

    status_code: int
    status_message: str
    body: Any = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200

    def to_error(self, action: str) -> MattermostAPIError:
        message = f"{action} failed: {self.status_code} {self.status_message}"
        if self.status_code == 408 or self.status_code >= 500:
            return MattermostTransientError(message, status_code=self.status_code)
        return MattermostPermanentError(message, status_code=self.status_code)


REQUEST_TIMEOUT = RestResponse(status_code=408, status_message="Request Timeout")
INTERNAL_ERROR = RestResponse(status_code=500, status_message="Internal Server Error")


def build_authentication_challenge(token: Optional[str]) -> dict[str, Any]:
    return {"seq": 1, "action": "authentication_challenge", "data": {"token": token}}


def build_websocket_url(option: MattermostOption) -> str:
    scheme = Protocol.WSS if option.protocol == Protocol.HTTPS else Protocol.WS
    base_path = option.base_path.rstrip("/")
    return f"{scheme.value}://{option.host_name}:{option.port}{base_path}/websocket"


def build_ssl_context(option: MattermostOption) -> Optional[ssl.SSLContext]:
    if option.protocol != Protocol.HTTPS:
        return None
    material = option.tls_certificate
    if not material:
        return ssl.create_default_context()
    if material.lstrip().startswith("-----BEGIN"):
        return ssl.create_default_context(cadata=material)
    return ssl.create_default_context(cafile=material)


class MattermostClient:
    """REST + WebSocket session with a Mattermost server.

    The connection state machine runs on the event loop: ``connect`` logs in
    over REST, opens the socket and starts the heartbeat; socket loss or a
    stale heartbeat goes through ``reconnect``, which waits
    ``reconnect_count * 2s`` before connecting again.
    """

    auth_path = "/users/me"

    def __init__(
        self,
        middleware: "MattermostMiddleware",
        option: MattermostOption,
        *,
        logger: logging.Logger,
        heartbeat_seconds: float = DEFAULT_HEARTBEAT_SECONDS,
        reconnect_step_seconds: float = DEFAULT_RECONNECT_STEP_SECONDS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        auto_reconnect: bool = True,
    ) -> None:
        self._middleware = middleware
        self._option = option
        self._logger = logger
        self._heartbeat_seconds = heartbeat_seconds
        self._reconnect_step_seconds = reconnect_step_seconds
        self._auto_reconnect = auto_reconnect
        self._ssl_context = build_ssl_context(option)
        self._client = httpx.AsyncClient(
            base_url=option.base_url,
            timeout=timeout_seconds,
            verify=self._ssl_context if self._ssl_context is not None else True,
        )
        self._status = ConnectionStatus.NOT_CONNECTED
        self._team_id: Optional[str] = None
        self._websocket: Any = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._dispatch_tasks: set[asyncio.Task[Any]] = set()
        self._reconnect_count = 0
        self._last_pong_time: Optional[float] = None

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def team_id(self) -> Optional[str]:
        return self._team_id

    @property
    def reconnect_count(self) -> int:
        return self._reconnect_count

    @property
    def last_pong_time(self) -> Optional[float]:
        return self._last_pong_time

    @property
    def websocket_url(self) -> str:
        return build_websocket_url(self._option)

    def _now(self) -> float:
        return asyncio.get_running_loop().time()

    async def connect(self) -> None:
        if self._status == ConnectionStatus.CONNECTING:
            self._logger.debug("Mattermost connect skipped; already connecting")
            return
        self._status = ConnectionStatus.CONNECTING
        try:
            response = await self.get(self.auth_path)
            if not response.ok:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "mattermost.connect.auth_failed",
                    status_code=response.status_code,
                    status_message=response.status_message,
                )
                self._status = ConnectionStatus.NOT_CONNECTED
                await self.reconnect()
                return

            body = response.body if isinstance(response.body, dict) else {}
            self._middleware.update_bot_user(
                User(id=str(body.get("id", "")), name=str(body.get("username", "")))
            )
            log_event(
                self._logger,
                logging.INFO,
                "mattermost.connect.logged_in",
                username=body.get("username"),
            )
            await self.resolve_team_id()

            await self._cancel_heartbeat()
            await self._terminate_socket()
            connect_kwargs: dict[str, Any] = {"ping_interval": None}
            if self._ssl_context is not None:
                connect_kwargs["ssl"] = self._ssl_context
            websocket = await websockets.connect(self.websocket_url, **connect_kwargs)
            self._websocket = websocket
            await self._on_open(websocket)
            self._receive_task = asyncio.create_task(self._receive_loop(websocket))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.connect.failed",
                url=self.websocket_url,
                exc=exc,
            )
            self._status = ConnectionStatus.ERROR
            if self._auto_reconnect:
                await self.reconnect()

    async def reconnect(self) -> None:
        if self._status == ConnectionStatus.RECONNECTING:
            self._logger.debug("Mattermost reconnect already in progress")
            return
        self._status = ConnectionStatus.RECONNECTING
        await self._cancel_heartbeat()
        await self._terminate_socket()
        self._reconnect_count += 1
        delay = self._reconnect_count * self._reconnect_step_seconds
        log_event(
            self._logger,
            logging.INFO,
            "mattermost.reconnect.scheduled",
            attempt=self._reconnect_count,
            delay_seconds=delay,
        )
        self._reconnect_task = asyncio.create_task(self._delayed_connect(delay))

    async def _delayed_connect(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._logger.debug("Trying to reconnect to Mattermost server")
        await self.connect()

    async def disconnect(self) -> None:
        self._auto_reconnect = False
        self._status = ConnectionStatus.CLOSING
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._cancel_heartbeat()
        await self._terminate_socket()
        await self.wait_idle()
        self._status = ConnectionStatus.CLOSED

    async def close(self) -> None:
        await self.disconnect()
        await self._client.aclose()

    async def wait_idle(self) -> None:
        """Wait until every in-flight inbound event has been processed."""
        while self._dispatch_tasks:
            await asyncio.gather(*list(self._dispatch_tasks), return_exceptions=True)

    async def _on_open(self, websocket: Any) -> None:
        # The server's hello arrives later; ALIVE is set optimistically.
        self._reconnect_count = 0
        self._status = ConnectionStatus.ALIVE
        log_event(self._logger, logging.INFO, "mattermost.websocket.open")
        await self._authenticate(websocket)
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(websocket))

    async def _authenticate(self, websocket: Any) -> None:
        if self._status != ConnectionStatus.ALIVE:
            self._logger.error(
                "Could not send authentication challenge; websocket is not alive"
            )
            return
        challenge = build_authentication_challenge(self._option.bot_access_token)
        await websocket.send(json.dumps(challenge))

    async def _heartbeat_loop(self, websocket: Any) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_seconds)
            if await self.heartbeat_tick(websocket):
                return

    async def heartbeat_tick(self, websocket: Any) -> bool:
        """Run one heartbeat check; returns True when a reconnect was triggered."""
        if self._status != ConnectionStatus.ALIVE:
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.heartbeat.not_alive",
                status=self._status.value,
            )
            await self.reconnect()
            return True
        if self._last_pong_time is not None and (
            self._now() - self._last_pong_time
            > HEARTBEAT_GRACE_FACTOR * self._heartbeat_seconds
        ):
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.heartbeat.expired",
                seconds_since_pong=round(self._now() - self._last_pong_time, 3),
            )
            self._status = ConnectionStatus.EXPIRED
            await self.reconnect()
            return True
        self._logger.debug("Sending heartbeat ping to Mattermost server")
        pong_waiter = await websocket.ping()
        pong_waiter.add_done_callback(self._on_pong_future)
        return False

    def _on_pong_future(self, future: "asyncio.Future[Any]") -> None:
        if future.cancelled() or future.exception() is not None:
            return
        self.on_pong()

    def on_pong(self) -> None:
        self._logger.debug("Received heartbeat pong from Mattermost server")
        self._last_pong_time = self._now()

    async def _receive_loop(self, websocket: Any) -> None:
        close_code: Optional[int] = None
        try:
            async for raw in websocket:
                self.on_message(raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as exc:
            close_code = getattr(getattr(exc, "rcvd", None), "code", None)
        except Exception as exc:
            self._status = ConnectionStatus.ERROR
            log_event(self._logger, logging.ERROR, "mattermost.websocket.error", exc=exc)
        if websocket is self._websocket:
            await self._on_close(close_code)

    async def _on_close(self, code: Optional[int]) -> None:
        log_event(self._logger, logging.INFO, "mattermost.websocket.closed", code=code)
        self._status = ConnectionStatus.CLOSED
        if self._auto_reconnect:
            await self.reconnect()

    def on_message(self, raw: Union[str, bytes]) -> None:
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            message = json.loads(raw)
        except (UnicodeDecodeError, ValueError) as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.websocket.malformed",
                raw=str(raw),
                exc=exc,
            )
            return
        if not isinstance(message, dict):
            return
        event = message.get("event")
        if event == "posted":
            task = asyncio.create_task(self._middleware.process_message(message))
            self._dispatch_tasks.add(task)
            task.add_done_callback(self._dispatch_tasks.discard)
        elif event == "hello":
            self._last_pong_time = self._now()
        else:
            self._logger.debug("Ignoring Mattermost event %s", event)

    async def _cancel_heartbeat(self) -> None:
        task = self._heartbeat_task
        self._heartbeat_task = None
        await self._cancel_task(task)

    async def _terminate_socket(self) -> None:
        websocket = self._websocket
        self._websocket = None
        task = self._receive_task
        self._receive_task = None
        await self._cancel_task(task)
        if websocket is not None:
            with contextlib.suppress(Exception):
                await websocket.close()

    async def _cancel_task(self, task: Optional[asyncio.Task[Any]]) -> None:
        if task is None or task is asyncio.current_task():
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            self._logger.debug("Mattermost background task ended with error: %s", exc)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"BEARER {self._option.bot_access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def get(self, path: str) -> RestResponse:
        return await self._request("GET", path)

    async def post(self, path: str, payload: Any) -> RestResponse:
        return await self._request("POST", path, payload=payload)

    async def _request(
        self, method: str, path: str, *, payload: Any = None
    ) -> RestResponse:
        try:
            response = await self._client.request(
                method,
                path,
                content=json.dumps(payload) if payload is not None else None,
                headers=self._headers(),
            )
        except httpx.TimeoutException as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.rest.timeout",
                method=method,
                path=path,
                exc=exc,
            )
            return REQUEST_TIMEOUT
        except httpx.HTTPError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.rest.failed",
                method=method,
                path=path,
                exc=exc,
            )
            return INTERNAL_ERROR
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        return RestResponse(
            status_code=response.status_code,
            status_message=response.reason_phrase,
            body=body,
        )

    async def resolve_team_id(self) -> Optional[str]:
        response = await self.get("/users/me/teams")
        if not response.ok or not isinstance(response.body, list):
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.team.lookup_failed",
                status_code=response.status_code,
                status_message=response.status_message,
            )
            return None
        wanted = self._option.team_url.lower()
        for team in response.body:
            if isinstance(team, dict) and str(team.get("name", "")).lower() == wanted:
                self._team_id = str(team.get("id"))
                return self._team_id
        log_event(
            self._logger,
            logging.ERROR,
            "mattermost.team.not_found",
            team_url=self._option.team_url,
        )
        return None

    async def send_message(
        self, message: Any, channel_id: str, root_id: str = ""
    ) -> RestResponse:
        post: dict[str, Any] = {
            "message": message,
            "root_id": root_id,
            "channel_id": channel_id,
        }
        if isinstance(message, dict):
            post["message"] = message.get("message", "")
            if message.get("props") is not None:
                post["props"] = message["props"]
        response = await self.post("/posts", post)
        if response.status_code not in (200, 201):
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.post.failed",
                channel_id=channel_id,
                status_code=response.status_code,
                status_message=response.status_message,
            )
        return response

    async def open_dialog(self, dialog: Any) -> RestResponse:
        response = await self.post("/actions/dialogs/open", dialog)
        if not response.ok:
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.dialog.open_failed",
                status_code=response.status_code,
                status_message=response.status_message,
            )
        return response

    def _channel_from_body(self, body: Any) -> Channel:
        return Channel(
            id=str(body.get("id", "")),
            name=str(body.get("display_name", "")),
            chatting_type=self.get_chatting_type(body.get("type")),
        )

    async def get_channel_by_id(self, channel_id: str) -> Optional[Channel]:
        response = await self.get(f"/channels/{channel_id}")
        if not response.ok or not isinstance(response.body, dict):
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.channel.lookup_failed",
                channel_id=channel_id,
                status_message=response.status_message,
            )
            return None
        return self._channel_from_body(response.body)

    async def get_channel_by_name(self, name: str) -> Optional[Channel]:
        if self._team_id is None:
            self._logger.error("Could not get channel info without team id")
            return None
        response = await self.get(f"/teams/{self._team_id}/channels/name/{name}")
        if not response.ok or not isinstance(response.body, dict):
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.channel.lookup_failed",
                channel_name=name,
                status_message=response.status_message,
            )
            return None
        return self._channel_from_body(response.body)

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        response = await self.get(f"/users/{user_id}")
        if not response.ok or not isinstance(response.body, dict):
            log_event(
                self._logger,
                logging.ERROR,
                "mattermost.user.lookup_failed",
                user_id=user_id,
                status_message=response.status_message,
            )
            return None
        body = response.body
        user = User(
            id=str(body.get("id", user_id)),
            name=str(body.get("username", "")),
            email=str(body.get("email", "")),
        )
        self._middleware.add_user(user.id, user)
        return user

    def get_chatting_type(self, code: Any) -> ChattingType:
        chatting_type = CHATTING_TYPES.get(code) if isinstance(code, str) else None
        if chatting_type is None:
            self._logger.warning("Unsupported Mattermost channel type: %s", code)
            return ChattingType.UNKNOWN
        return chatting_type
