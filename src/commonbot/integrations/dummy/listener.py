from __future__ import annotations

from ...core.listener import Listener
from .middleware import DummyMiddleware


class DummyListener(Listener):
    middleware_class = DummyMiddleware
