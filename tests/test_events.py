import asyncio

import pytest

from privatepdf.ollama.events import QueueSink, emit, threadsafe_sink
from privatepdf.ollama.models import StreamChunk


def test_emit_dumps_models_and_ignores_missing_sink():
    received = []

    emit(None, "ollama_stream_chunk", StreamChunk(content="x"))
    emit(lambda e, p: received.append((e, p)), "ollama_stream_chunk", StreamChunk(content="x"))

    assert received == [("ollama_stream_chunk", {"content": "x", "done": False})]


@pytest.mark.asyncio
async def test_emit_schedules_async_sink_without_waiting():
    received = []
    gate = asyncio.Event()

    async def sink(event, payload):
        await gate.wait()
        received.append(payload)

    emit(sink, "evt", {"n": 1})
    assert received == []

    gate.set()
    await asyncio.sleep(0.01)
    assert received == [{"n": 1}]


@pytest.mark.asyncio
async def test_failing_async_sink_is_contained():
    async def sink(event, payload):
        raise RuntimeError("frontend gone")

    emit(sink, "evt", {})
    await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_threadsafe_sink_delivers_on_loop():
    loop = asyncio.get_running_loop()
    sink = QueueSink()
    relay = threadsafe_sink(sink, loop)

    await loop.run_in_executor(None, relay, "ollama_extraction_progress", {"current": 1})
    event = await asyncio.wait_for(sink.queue.get(), timeout=1.0)

    assert event == ("ollama_extraction_progress", {"current": 1})
    assert threadsafe_sink(None, loop) is None


def test_queue_sink_drops_when_full():
    sink = QueueSink(maxsize=1)
    sink("a", {})
    sink("b", {})

    assert sink.queue.qsize() == 1
    assert sink.queue.get_nowait() == ("a", {})
