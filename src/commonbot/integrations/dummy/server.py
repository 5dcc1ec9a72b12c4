"""Local stand-in for a Mattermost server.

Serves the REST endpoints the dummy client calls and a WebSocket that sends
``hello`` on connect and answers every frame with a ``posted`` event, so a
bot can be exercised end to end without a real chat platform.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Optional

from fastapi import APIRouter, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ...core.logging_utils import log_event
from .client import DUMMY_TEAM_ID

DUMMY_BOT_ID = "myid"
DUMMY_BOT_USERNAME = "dummy-user"
DUMMY_SENDER_ID = "45oe76zzr78w3rugc5r3xss8cr"
DUMMY_CHANNEL_ID = "hj7byq55j3yfdr4y5dnizzzx6r"


def build_posted_event(
    text: str,
    *,
    user_id: str = DUMMY_SENDER_ID,
    channel_id: str = DUMMY_CHANNEL_ID,
    channel_type: str = "O",
    sender_name: str = "@nancy",
) -> dict[str, Any]:
    now_ms = int(time.time() * 1000)
    return {
        "event": "posted",
        "data": {
            "channel_display_name": "Town Square",
            "channel_name": "town-square",
            "channel_type": channel_type,
            "post": {
                "id": uuid.uuid4().hex[:26],
                "create_at": now_ms,
                "update_at": now_ms,
                "user_id": user_id,
                "channel_id": channel_id,
                "root_id": "",
                "message": text,
                "type": "",
                "props": {},
            },
            "sender_name": sender_name,
            "team_id": DUMMY_TEAM_ID,
        },
        "broadcast": {"channel_id": channel_id, "user_id": "", "team_id": ""},
    }


def build_dummy_rest_routes(state: dict[str, Any]) -> APIRouter:
    router = APIRouter()

    @router.get("/auth")
    def auth() -> dict[str, Any]:
        return {"id": DUMMY_BOT_ID, "username": DUMMY_BOT_USERNAME}

    @router.get("/users/{user_id}")
    def get_user(user_id: str) -> dict[str, Any]:
        return {"id": user_id, "username": "username", "email": "fake@example.com"}

    @router.get("/channels/{channel_id}")
    def get_channel(channel_id: str) -> dict[str, Any]:
        return {
            "id": channel_id,
            "name": "channelname",
            "display_name": "channelname",
            "type": "O",
        }

    @router.get("/teams/{team_id}/channels/name/{name}")
    def get_channel_by_name(team_id: str, name: str) -> Any:
        if name in state["missing_channels"]:
            return JSONResponse({"message": "not found"}, status_code=404)
        return {
            "id": f"{team_id}-{name}",
            "name": name,
            "display_name": name,
            "type": "O",
        }

    @router.post("/posts", status_code=201)
    async def create_post(body: dict[str, Any]) -> dict[str, Any]:
        state["posts"].append(body)
        return {"id": uuid.uuid4().hex[:26], **body}

    @router.post("/actions/dialogs/open")
    async def open_dialog(body: dict[str, Any]) -> dict[str, Any]:
        state["dialogs"].append(body)
        return {}

    return router


def build_dummy_server_app(*, logger: Optional[logging.Logger] = None) -> FastAPI:
    log = logger or logging.getLogger(__name__)
    app = FastAPI(title="commonbot dummy chat server")
    state: dict[str, Any] = {
        "posts": [],
        "dialogs": [],
        "frames": [],
        "missing_channels": set(),
    }
    app.state.dummy = state
    app.include_router(build_dummy_rest_routes(state))

    @app.websocket("/websocket")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        await websocket.send_text(json.dumps({"event": "hello", "data": {}}))
        try:
            while True:
                frame = await websocket.receive_text()
                state["frames"].append(frame)
                log_event(log, logging.DEBUG, "dummy_server.frame", frame=frame)
                try:
                    parsed = json.loads(frame)
                except ValueError:
                    parsed = None
                if isinstance(parsed, dict) and parsed.get("action") == (
                    "authentication_challenge"
                ):
                    await websocket.send_text(
                        json.dumps({"status": "OK", "seq_reply": parsed.get("seq")})
                    )
                    continue
                await websocket.send_text(
                    json.dumps(build_posted_event(f"You sent me : {frame}"))
                )
        except WebSocketDisconnect:
            log_event(log, logging.DEBUG, "dummy_server.disconnected")

    return app
