from __future__ import annotations

from ...core.listener import Listener
from .middleware import SlackMiddleware


class SlackListener(Listener):
    middleware_class = SlackMiddleware
