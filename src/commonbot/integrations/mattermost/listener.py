from __future__ import annotations

from ...core.listener import Listener
from .middleware import MattermostMiddleware


class MattermostListener(Listener):
    middleware_class = MattermostMiddleware
