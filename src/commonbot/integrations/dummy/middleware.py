from __future__ import annotations

import json
from typing import Any

from ...core.types import ChatToolType
from ..mattermost.errors import MattermostAPIError
from ..mattermost.middleware import MattermostMiddleware
from .client import DummyClient


class DummyMiddleware(MattermostMiddleware):
    chat_tool_type = ChatToolType.DUMMY
    client_class = DummyClient

    def load_post(self, data: dict[str, Any]) -> dict[str, Any]:
        # The dummy server sends the post as an object; accept encoded posts too.
        post = data["post"]
        if isinstance(post, str):
            post = json.loads(post)
        if not isinstance(post, dict):
            raise MattermostAPIError("Dummy post payload must be an object")
        return post
