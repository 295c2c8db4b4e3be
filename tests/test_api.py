import json

import pytest
from fastapi.testclient import TestClient

from privatepdf import app_settings
from privatepdf.ollama.errors import (
    NotFoundError,
    ServerError,
    TransportError,
    UnsupportedPlatformError,
)
from privatepdf.ollama.models import ServiceStatus
from privatepdf.ollama.service import set_service
from privatepdf.server import create_app


class _FakeService:
    def __init__(self):
        self.calls: list[tuple] = []
        self.start_error: Exception | None = None
        self.chat_error: Exception | None = None
        self.stopped_on_exit = False
        self.cleaned_up = False

    async def check_status(self):
        return ServiceStatus(running=True, models_available=True, models=["gemma3:1b"])

    async def ping(self):
        return True

    async def start(self):
        if self.start_error is not None:
            raise self.start_error
        return "Ollama server starting."

    async def stop(self):
        return "Ollama service stopped"

    async def chat(self, model, messages, options=None):
        self.calls.append(("chat", model, [m.content for m in messages], options))
        if self.chat_error is not None:
            raise self.chat_error
        return "Hello!"

    async def chat_stream(self, model, messages, options=None, sink=None):
        sink("ollama_stream_chunk", {"content": "Hel", "done": False})
        sink("ollama_stream_chunk", {"content": "lo", "done": True})
        return "Hello"

    async def embed(self, model, text):
        return [0.5, 0.25]

    async def pull_model(self, model_name, sink=None):
        sink("model_download_progress", {"model": model_name, "status": "pulling manifest"})
        raise ServerError("Ollama error: file does not exist")

    async def install(self, is_amd_gpu, sink=None):
        raise UnsupportedPlatformError("ZIP installation only supported on Windows")

    def stop_on_exit(self):
        self.stopped_on_exit = True
        return True

    async def cleanup(self):
        self.cleaned_up = True


@pytest.fixture
def service():
    fake = _FakeService()
    set_service(fake)
    yield fake
    set_service(None)


@pytest.fixture
def client(service):
    return TestClient(create_app())


def _lines(response) -> list[dict]:
    return [json.loads(line) for line in response.text.splitlines() if line]


def test_status_and_ping(client):
    assert client.get("/api/ollama/status").json() == {
        "running": True,
        "models_available": True,
        "models": ["gemma3:1b"],
    }
    assert client.get("/api/ollama/ping").json() == {"ok": True}


def test_start_and_stop(client):
    assert client.post("/api/ollama/service/start").json()["status"] == "ok"
    assert client.post("/api/ollama/service/stop").json() == {
        "status": "ok",
        "message": "Ollama service stopped",
    }


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (NotFoundError("Could not find or start Ollama."), 404),
        (TransportError("Chat failed: HTTP 500"), 502),
        (RuntimeError("unexpected"), None),
    ],
)
def test_start_error_mapping(service, error, status_code):
    service.start_error = error
    client = TestClient(create_app(), raise_server_exceptions=False)

    response = client.post("/api/ollama/service/start")

    if status_code is None:
        assert response.status_code == 500
    else:
        assert response.status_code == status_code
        assert response.json()["detail"] == str(error)


def test_chat_passes_messages_and_options(client, service):
    response = client.post(
        "/api/ollama/chat",
        json={
            "model": "gemma3:1b",
            "messages": [{"role": "user", "content": "Hi"}],
            "options": {"temperature": 0.4},
        },
    )

    assert response.json() == {"content": "Hello!"}
    _, model, contents, options = service.calls[0]
    assert model == "gemma3:1b"
    assert contents == ["Hi"]
    assert options.temperature == 0.4
    assert options.top_p is None


def test_chat_rejects_empty_messages(client):
    response = client.post("/api/ollama/chat", json={"model": "m", "messages": []})

    assert response.status_code == 400


def test_chat_rejects_invalid_role(client):
    response = client.post(
        "/api/ollama/chat", json={"model": "m", "messages": [{"role": "tool", "content": "x"}]}
    )

    assert response.status_code == 422


def test_chat_stream_emits_chunks_then_result(client):
    response = client.post(
        "/api/ollama/chat/stream",
        json={"model": "m", "messages": [{"role": "user", "content": "Hi"}]},
    )

    assert response.headers["content-type"].startswith("application/x-ndjson")
    assert _lines(response) == [
        {"event": "ollama_stream_chunk", "payload": {"content": "Hel", "done": False}},
        {"event": "ollama_stream_chunk", "payload": {"content": "lo", "done": True}},
        {"event": "result", "payload": "Hello"},
    ]


def test_embeddings(client):
    response = client.post("/api/ollama/embeddings", json={"model": "m", "text": "chunk"})

    assert response.json() == {"embedding": [0.5, 0.25]}


def test_pull_stream_ends_with_error_line(client):
    response = client.post("/api/ollama/models/pull", json={"name": "nope:latest"})

    lines = _lines(response)
    assert lines[0]["event"] == "model_download_progress"
    assert lines[0]["payload"]["model"] == "nope:latest"
    assert lines[-1] == {"event": "error", "message": "Ollama error: file does not exist"}


def test_install_stream_reports_unsupported_platform(client):
    response = client.post("/api/ollama/install", json={"is_amd_gpu": True})

    assert _lines(response) == [
        {"event": "error", "message": "ZIP installation only supported on Windows"}
    ]


def test_settings_roundtrip(client, monkeypatch, tmp_path):
    monkeypatch.setattr(app_settings, "get_settings_path", lambda: tmp_path / "settings.json")

    assert client.get("/api/ollama/settings").json()["theme"] == "dark"

    updated = client.put(
        "/api/ollama/settings",
        json={"theme": "light", "ollama_model": "llama3.1:8b", "temperature": 0.3, "top_p": 0.8},
    )
    assert updated.status_code == 200
    assert client.get("/api/ollama/settings").json()["ollama_model"] == "llama3.1:8b"

    assert client.delete("/api/ollama/settings").json()["theme"] == "dark"
    assert client.get("/api/ollama/settings").json()["ollama_model"] == "gemma3:1b-it-q4_K_M"


def test_shutdown_stops_ollama(service):
    with TestClient(create_app()) as client:
        client.get("/api/ollama/ping")

    assert service.stopped_on_exit is True
    assert service.cleaned_up is True
