"""HTTP receiver for the Slack Events API and interactivity callbacks."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse, Response
from slack_sdk.signature import SignatureVerifier

from ...core.logging_utils import log_event

if TYPE_CHECKING:
    from .middleware import SlackMiddleware


def build_slack_routes(
    middleware: "SlackMiddleware",
    *,
    signing_secret: str,
    message_path: str,
    action_path: str,
    logger: logging.Logger,
) -> APIRouter:
    router = APIRouter()
    verifier = SignatureVerifier(signing_secret)

    async def _verified_body(request: Request) -> bytes | None:
        body = await request.body()
        if not verifier.is_valid_request(body, dict(request.headers)):
            log_event(logger, logging.WARNING, "slack.request.bad_signature")
            return None
        return body

    def _parse_object(raw: bytes | str) -> dict[str, Any] | None:
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            log_event(logger, logging.WARNING, "slack.payload.malformed", exc=exc)
            return None
        if not isinstance(payload, dict):
            log_event(logger, logging.WARNING, "slack.payload.malformed")
            return None
        return payload

    @router.post(message_path)
    async def slack_events(request: Request, background_tasks: BackgroundTasks) -> Any:
        body = await _verified_body(request)
        if body is None:
            return JSONResponse({"error": "invalid signature"}, status_code=401)
        payload = _parse_object(body or b"{}")
        if payload is None:
            return JSONResponse({"error": "invalid JSON"}, status_code=400)
        if payload.get("type") == "url_verification":
            return {"challenge": payload.get("challenge")}
        if payload.get("type") == "event_callback":
            background_tasks.add_task(middleware.handle_event_callback, payload)
        return Response(status_code=200)

    @router.post(action_path)
    async def slack_actions(request: Request, background_tasks: BackgroundTasks) -> Any:
        body = await _verified_body(request)
        if body is None:
            return JSONResponse({"error": "invalid signature"}, status_code=401)
        try:
            form = parse_qs(body.decode("utf-8"))
        except UnicodeDecodeError as exc:
            log_event(logger, logging.WARNING, "slack.payload.malformed", exc=exc)
            return JSONResponse({"error": "invalid form body"}, status_code=400)
        payload = _parse_object((form.get("payload") or ["{}"])[0])
        if payload is None:
            return JSONResponse({"error": "invalid JSON"}, status_code=400)
        background_tasks.add_task(middleware.handle_interactive, payload)
        return Response(status_code=200)

    return router
