import json

import httpx
import pytest

from privatepdf.ollama.errors import ServerError, TransportError
from privatepdf.ollama.pull import ModelPuller
from privatepdf.ollama.transport import OllamaTransport


def _transport(handler) -> OllamaTransport:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://test-ollama"
    )
    return OllamaTransport("http://test-ollama", client=client)


def _ndjson(*records) -> bytes:
    return "".join(json.dumps(r) + "\n" for r in records).encode("utf-8")


@pytest.mark.asyncio
async def test_pull_relays_progress_records():
    seen = {}
    events = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/pull"
        seen.update(json.loads(request.content))
        return httpx.Response(
            200,
            content=_ndjson(
                {"status": "pulling manifest"},
                {"status": "downloading", "digest": "sha256:ab", "total": 200, "completed": 50},
                {"status": "downloading", "digest": "sha256:ab", "total": 200, "completed": 200},
                {"status": "success"},
            ),
        )

    transport = _transport(handler)
    await ModelPuller(transport).pull("gemma3:1b", sink=lambda e, p: events.append((e, p)))
    await transport.aclose()

    assert seen == {"name": "gemma3:1b", "stream": True}
    assert [e for e, _ in events] == ["model_download_progress"] * 4
    payloads = [p for _, p in events]
    assert payloads[0] == {
        "model": "gemma3:1b",
        "status": "pulling manifest",
        "total": 0,
        "completed": 0,
        "percent": 0.0,
    }
    assert payloads[1]["percent"] == 25.0
    assert payloads[2]["percent"] == 100.0
    assert payloads[3]["status"] == "success"


@pytest.mark.asyncio
async def test_pull_http_error():
    transport = _transport(lambda request: httpx.Response(500))

    with pytest.raises(TransportError, match="Failed to download model: HTTP 500"):
        await ModelPuller(transport).pull("gemma3:1b")
    await transport.aclose()


@pytest.mark.asyncio
async def test_pull_error_record_aborts():
    events = []
    body = _ndjson(
        {"status": "pulling manifest"},
        {"error": "pull model manifest: file does not exist"},
    )
    transport = _transport(lambda request: httpx.Response(200, content=body))

    with pytest.raises(ServerError, match="file does not exist"):
        await ModelPuller(transport).pull("nope:latest", sink=lambda e, p: events.append(p))
    await transport.aclose()

    assert len(events) == 1


@pytest.mark.asyncio
async def test_pull_tolerates_bad_numbers_and_lines():
    events = []
    body = _ndjson({"status": "downloading", "total": "lots", "completed": None}) + b"{oops\n"
    transport = _transport(lambda request: httpx.Response(200, content=body))

    await ModelPuller(transport).pull("m", sink=lambda e, p: events.append(p))
    await transport.aclose()

    assert events == [
        {"model": "m", "status": "downloading", "total": 0, "completed": 0, "percent": 0.0}
    ]
