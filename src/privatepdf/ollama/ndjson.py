"""Newline-delimited JSON decoding for Ollama's streaming endpoints.

Chunk boundaries coming off the socket have nothing to do with record
boundaries: a single record may arrive in several pieces, and one chunk may
carry several records.  :class:`NDJSONDecoder` owns the accumulation buffer
for one response and hands back complete records only.

    decoder = NDJSONDecoder()
    for chunk in chunks:
        for record in decoder.feed(chunk):
            ...
    decoder.close()   # drops any unterminated tail
"""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

logger = logging.getLogger(__name__)


class NDJSONDecoder:
    """Reassembles byte chunks into parsed JSON records, one per line."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Bytes held back waiting for a line break."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[Any]:
        """Append ``chunk`` and return every record completed by it, in order."""
        self._buffer.extend(chunk)
        records: list[Any] = []
        while True:
            newline_idx = self._buffer.find(b"\n")
            if newline_idx < 0:
                break
            line = bytes(self._buffer[:newline_idx])
            del self._buffer[: newline_idx + 1]

            # Decode per line so multi-byte characters split across chunks survive
            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            try:
                records.append(json.loads(text))
            except json.JSONDecodeError as e:
                logger.warning("Failed to parse JSON line: %s", e)
        return records

    def close(self) -> None:
        """End of stream: an unterminated trailing record is discarded."""
        if self._buffer.strip():
            logger.debug("Discarding %d bytes of truncated NDJSON record", len(self._buffer))
        self._buffer.clear()


async def iter_records(chunks: AsyncIterable[bytes]) -> AsyncIterator[Any]:
    """Decode an async byte stream into JSON records in arrival order."""
    decoder = NDJSONDecoder()
    async for chunk in chunks:
        for record in decoder.feed(chunk):
            yield record
    decoder.close()
