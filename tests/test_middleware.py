from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.middleware import configure_middleware


def _app():
    app = FastAPI()

    @app.get("/ping")
    def ping():
        return {"ok": True}

    configure_middleware(app)
    return app


def test_trusted_hosts_block_unknown_host(monkeypatch):
    monkeypatch.setenv("TRUSTED_HOSTS", "chat.example.com")

    client = TestClient(_app())

    assert client.get("/ping").status_code == 400
    assert client.get("/ping", headers={"host": "chat.example.com"}).status_code == 200


def test_cors_allows_configured_origin(monkeypatch):
    monkeypatch.delenv("TRUSTED_HOSTS", raising=False)
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "https://chat.example.com")

    client = TestClient(_app())
    allowed = client.get("/ping", headers={"origin": "https://chat.example.com"})
    other = client.get("/ping", headers={"origin": "https://elsewhere.example.com"})

    assert allowed.headers["access-control-allow-origin"] == "https://chat.example.com"
    assert "access-control-allow-origin" not in other.headers
