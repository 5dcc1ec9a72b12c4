from __future__ import annotations

from ...core.listener import Listener
from .middleware import MsteamsMiddleware


class MsteamsListener(Listener):
    middleware_class = MsteamsMiddleware
