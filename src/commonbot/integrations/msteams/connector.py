"""Minimal Bot Framework connector over httpx.

Covers the handful of REST calls the adapter needs: posting activities into
a conversation, creating a channel conversation for proactive messages and
reading team rosters and channels.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from ...core.logging_utils import log_event
from .errors import MsteamsAPIError, MsteamsAuthError

BOT_FRAMEWORK_TOKEN_URL = (
    "https://login.microsoftonline.com/botframework.com/oauth2/v2.0/token"
)
BOT_FRAMEWORK_SCOPE = "https://api.botframework.com/.default"
TOKEN_REFRESH_MARGIN_SECONDS = 60.0


class BotFrameworkConnector:
    def __init__(
        self,
        app_id: str,
        app_password: Optional[str],
        *,
        logger: Optional[logging.Logger] = None,
        timeout_seconds: float = 15.0,
        token_url: str = BOT_FRAMEWORK_TOKEN_URL,
    ) -> None:
        self._app_id = app_id
        self._app_password = app_password
        self._logger = logger or logging.getLogger(__name__)
        self._token_url = token_url
        self._client = httpx.AsyncClient(timeout=timeout_seconds)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    async def close(self) -> None:
        await self._client.aclose()

    async def get_token(self) -> str:
        now = asyncio.get_running_loop().time()
        if self._token is not None and now < self._token_expires_at:
            return self._token
        if not self._app_password:
            raise MsteamsAuthError("Bot password is not configured")
        response = await self._client.post(
            self._token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self._app_id,
                "client_secret": self._app_password,
                "scope": BOT_FRAMEWORK_SCOPE,
            },
        )
        if response.status_code != 200:
            raise MsteamsAuthError(
                f"Token request failed: {response.status_code}",
                status_code=response.status_code,
            )
        body = response.json()
        self._token = str(body["access_token"])
        expires_in = float(body.get("expires_in") or 3600)
        self._token_expires_at = now + max(
            expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 0.0
        )
        return self._token

    async def _request(
        self, method: str, url: str, *, payload: Optional[dict[str, Any]] = None
    ) -> Any:
        token = await self.get_token()
        try:
            response = await self._client.request(
                method,
                url,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise MsteamsAPIError(f"{method} {url} failed: {exc}") from exc
        if response.status_code == 401:
            self._token = None
        if not 200 <= response.status_code < 300:
            preview = (response.text or "").strip().replace("\n", " ")[:200]
            log_event(
                self._logger,
                logging.ERROR,
                "msteams.connector.request_failed",
                method=method,
                url=url,
                status_code=response.status_code,
                body=preview,
            )
            raise MsteamsAPIError(
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()

    async def send_to_conversation(
        self, service_url: str, conversation_id: str, activity: dict[str, Any]
    ) -> dict[str, Any]:
        url = _join(
            service_url,
            f"v3/conversations/{quote(conversation_id, safe='')}/activities",
        )
        return await self._request("POST", url, payload=activity)

    async def reply_to_activity(
        self,
        service_url: str,
        conversation_id: str,
        activity_id: str,
        activity: dict[str, Any],
    ) -> dict[str, Any]:
        url = _join(
            service_url,
            f"v3/conversations/{quote(conversation_id, safe='')}"
            f"/activities/{quote(activity_id, safe='')}",
        )
        return await self._request("POST", url, payload=activity)

    async def create_conversation(
        self, service_url: str, parameters: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._request(
            "POST", _join(service_url, "v3/conversations"), payload=parameters
        )

    async def get_member(
        self, service_url: str, conversation_id: str, user_id: str
    ) -> dict[str, Any]:
        url = _join(
            service_url,
            f"v3/conversations/{quote(conversation_id, safe='')}"
            f"/members/{quote(user_id, safe='')}",
        )
        return await self._request("GET", url)

    async def get_team_channels(
        self, service_url: str, team_id: str
    ) -> list[dict[str, Any]]:
        url = _join(service_url, f"v3/teams/{quote(team_id, safe='')}/conversations")
        body = await self._request("GET", url)
        conversations = body.get("conversations") if isinstance(body, dict) else None
        return [item for item in conversations or [] if isinstance(item, dict)]


def _join(service_url: str, path: str) -> str:
    return f"{service_url.rstrip('/')}/{path}"
