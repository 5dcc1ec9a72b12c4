from fastapi.testclient import TestClient

from commonbot.core.config import MessagingAppOption
from commonbot.surfaces.web.app import build_messaging_app


def test_health_endpoint():
    client = TestClient(build_messaging_app())

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_base_path_becomes_root_path():
    app = build_messaging_app(MessagingAppOption(base_path="/bot/"))

    assert app.root_path == "/bot"
    assert app.state.messaging_option.base_path == "/bot/"
    assert build_messaging_app(MessagingAppOption(base_path="/")).root_path == ""
