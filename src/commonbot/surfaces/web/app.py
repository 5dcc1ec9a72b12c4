from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from ...core.config import MessagingAppOption


def _normalize_base_path(base_path: Optional[str]) -> str:
    if not base_path or base_path.strip() in ("", "/"):
        return ""
    return "/" + base_path.strip().strip("/")


def build_messaging_app(option: Optional[MessagingAppOption] = None) -> FastAPI:
    """HTTP app that platform routers and webhook middlewares mount onto."""
    option = option or MessagingAppOption()
    app = FastAPI(title="commonbot", root_path=_normalize_base_path(option.base_path))
    app.state.messaging_option = option

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
