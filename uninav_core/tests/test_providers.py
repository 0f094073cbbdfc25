from uninav_core.providers import create_client
from uninav_core.providers.uninav_client import UniNavClient


def test_create_client_default(monkeypatch):
    class DummySettings:
        api_base_url = "http://default.test/api/v1"
        http_timeout = 1.0

    monkeypatch.setattr("uninav_core.providers.settings", DummySettings())
    client = create_client()
    assert isinstance(client, UniNavClient)
    assert client._chat_url() == "http://default.test/api/v1/chat"


def test_create_client_explicit_base_url():
    client = create_client("http://other.test/api/v2/")
    assert isinstance(client, UniNavClient)
    assert client._chat_url() == "http://other.test/api/v2/chat"
