"""Validation of the bearer token Bot Framework attaches to inbound activities."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import jwt

from ...core.logging_utils import log_event
from .errors import MsteamsAuthError

BOT_FRAMEWORK_JWKS_URL = "https://login.botframework.com/v1/.well-known/keys"
BOT_FRAMEWORK_ISSUER = "https://api.botframework.com"
CLOCK_SKEW_SECONDS = 300


class BotFrameworkTokenValidator:
    def __init__(
        self,
        app_id: str,
        *,
        jwks_url: str = BOT_FRAMEWORK_JWKS_URL,
        issuer: str = BOT_FRAMEWORK_ISSUER,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._app_id = app_id
        self._issuer = issuer
        self._logger = logger or logging.getLogger(__name__)
        self._jwks_client = jwt.PyJWKClient(jwks_url)

    async def validate(self, authorization: Optional[str]) -> dict[str, Any]:
        scheme, _, token = (authorization or "").partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise MsteamsAuthError("Missing bearer token", status_code=401)
        try:
            return await asyncio.to_thread(self._decode, token.strip())
        except jwt.PyJWTError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "msteams.auth.rejected",
                reason=str(exc),
            )
            raise MsteamsAuthError(
                f"Invalid Bot Framework token: {exc}", status_code=401
            ) from exc

    def _decode(self, token: str) -> dict[str, Any]:
        signing_key = self._jwks_client.get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=self._app_id,
            issuer=self._issuer,
            leeway=CLOCK_SKEW_SECONDS,
        )
