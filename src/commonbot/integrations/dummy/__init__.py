"""Dummy platform for local development and tests."""

from .client import DUMMY_TEAM_ID, DummyClient
from .listener import DummyListener
from .middleware import DummyMiddleware
from .server import build_dummy_server_app, build_posted_event

__all__ = [
    "DUMMY_TEAM_ID",
    "DummyClient",
    "DummyListener",
    "DummyMiddleware",
    "build_dummy_server_app",
    "build_posted_event",
]
