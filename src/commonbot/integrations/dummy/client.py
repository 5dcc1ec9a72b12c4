from __future__ import annotations

from typing import Optional

from ..mattermost.client import MattermostClient

DUMMY_TEAM_ID = "dummy-team-id"


class DummyClient(MattermostClient):
    """Mattermost-compatible session against the local dummy chat server."""

    auth_path = "/auth"

    async def resolve_team_id(self) -> Optional[str]:
        self._team_id = DUMMY_TEAM_ID
        return self._team_id
