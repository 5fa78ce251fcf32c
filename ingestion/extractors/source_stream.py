"""
Streaming decoder for remote line-delimited JSON sources.

Reads a source over HTTP with a bounded text buffer and yields one parsed
record per non-blank line:

- The body is split on newlines as chunks arrive; a trailing partial line is
  carried over to the next chunk.
- Once ``limit`` records have been produced the response is closed and no
  further reads are issued.
- The first ``skip`` non-blank lines are counted and dropped without being
  parsed. Skipping is linear in the number of skipped lines because the
  source has no random-access index.
- A line that is not a JSON object, or that grows past the buffer limit, is
  counted as an error and dropped; decoding continues with the next line.
- Connection failures and error statuses raise ``SourceFetchError`` and end
  the call.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, NamedTuple, Optional

import httpx

from core.config import settings
from core.exceptions import RecordParseError, SourceFetchError

logger = logging.getLogger(__name__)


class DecodedRecord(NamedTuple):
    """A parsed line and its 1-based position among non-blank lines."""
    line_number: int
    data: Dict[str, Any]


class RecordStream:
    """
    Single-use async iterator over one decode call.

    Use as ``async with decoder.decode(...) as stream: async for rec in stream``
    so the HTTP response is released even when iteration stops early.

    Attributes:
        lines_consumed: Non-blank lines read so far, skipped lines included
        records_produced: Records yielded to the caller
        errors: Malformed lines dropped after the skip point
        exhausted: True once the end of the source was reached
        content_length: Source size in bytes, when the server reports it
        bytes_consumed: UTF-8 bytes of the non-blank lines read so far
    """

    def __init__(
        self,
        decoder: "StreamingDecoder",
        source_id: str,
        limit: Optional[int],
        skip: int,
    ):
        self.source_id = source_id
        self.url = decoder.resolve_url(source_id)
        self.limit = limit
        self.skip = max(0, skip)

        self.lines_consumed = 0
        self.records_produced = 0
        self.errors = 0
        self.exhausted = False
        self.content_length: Optional[int] = None
        self.bytes_consumed = 0

        self._decoder = decoder
        self._iterator: Optional[AsyncIterator[DecodedRecord]] = None

    def __aiter__(self) -> AsyncIterator[DecodedRecord]:
        if self._iterator is None:
            self._iterator = self._generate()
        return self._iterator

    async def __aenter__(self) -> "RecordStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._iterator is not None:
            await self._iterator.aclose()

    def _take_line(self, line: str) -> Optional[DecodedRecord]:
        stripped = line.strip()
        if not stripped:
            return None

        self.lines_consumed += 1
        self.bytes_consumed += len(stripped.encode("utf-8")) + 1
        if self.lines_consumed <= self.skip:
            return None

        try:
            data = json.loads(stripped)
        except ValueError as e:
            self._count_malformed("invalid JSON", e)
            return None

        if not isinstance(data, dict):
            self._count_malformed(f"expected a JSON object, got {type(data).__name__}")
            return None

        self.records_produced += 1
        return DecodedRecord(self.lines_consumed, data)

    def _take_oversized(self) -> None:
        self.lines_consumed += 1
        self.bytes_consumed += self._decoder.max_buffer_chars + 1
        if self.lines_consumed > self.skip:
            self._count_malformed(
                f"record exceeds buffer limit of {self._decoder.max_buffer_chars} characters"
            )

    def _count_malformed(self, reason: str, original: Optional[Exception] = None) -> None:
        self.errors += 1
        error = RecordParseError(
            f"Dropping malformed record: {reason}",
            context={"source_id": self.source_id, "line_number": self.lines_consumed},
            original_exception=original,
        )
        logger.warning(str(error))

    def _limit_reached(self) -> bool:
        return self.limit is not None and self.records_produced >= self.limit

    async def _generate(self) -> AsyncIterator[DecodedRecord]:
        if self.limit is not None and self.limit <= 0:
            return

        client = self._decoder.client
        owns_client = client is None
        if owns_client:
            client = httpx.AsyncClient(timeout=self._decoder.timeout)

        max_chars = self._decoder.max_buffer_chars
        try:
            async with client.stream("GET", self.url) as response:
                if response.status_code >= 400:
                    raise SourceFetchError(
                        f"Source {self.source_id} answered HTTP {response.status_code}",
                        context={
                            "source_id": self.source_id,
                            "url": self.url,
                            "status_code": response.status_code,
                        },
                    )

                length = response.headers.get("content-length")
                if length and length.isdigit():
                    self.content_length = int(length)

                buffer = ""
                discarding = False

                async for text in response.aiter_text():
                    start = 0
                    while True:
                        newline = text.find("\n", start)
                        if newline < 0:
                            if not discarding:
                                buffer += text[start:]
                                if len(buffer) > max_chars:
                                    self._take_oversized()
                                    buffer = ""
                                    discarding = True
                            break

                        piece = text[start:newline]
                        start = newline + 1
                        if discarding:
                            discarding = False
                            continue

                        line = buffer + piece
                        buffer = ""
                        if len(line) > max_chars:
                            self._take_oversized()
                            continue

                        record = self._take_line(line)
                        if record is not None:
                            yield record
                            if self._limit_reached():
                                return

                if buffer and not discarding:
                    record = self._take_line(buffer)
                    if record is not None:
                        yield record

                self.exhausted = True

        except httpx.HTTPError as e:
            raise SourceFetchError(
                f"Failed to read source {self.source_id}",
                context={"source_id": self.source_id, "url": self.url},
                original_exception=e,
            ) from e
        finally:
            if owns_client:
                await client.aclose()


class StreamingDecoder:
    """
    Decodes remote JSONL sources into records.

    Parameterized only by record counts (``limit``/``skip`` per call) and the
    buffer limit; batching is the importer's concern.

    Args:
        base_url: Prefix for source ids that are not absolute URLs
        client: Shared ``httpx.AsyncClient``; a client per call is created
            and closed when omitted
        max_buffer_chars: Largest single record accepted
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_buffer_chars: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.SOURCE_BASE_URL).rstrip("/")
        self.client = client
        self.max_buffer_chars = max_buffer_chars or settings.DECODER_MAX_BUFFER_CHARS
        self.timeout = timeout or settings.SOURCE_TIMEOUT

    def resolve_url(self, source_id: str) -> str:
        if source_id.startswith(("http://", "https://")):
            return source_id
        return f"{self.base_url}/{source_id.lstrip('/')}"

    def decode(
        self,
        source_id: str,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> RecordStream:
        """
        Start a lazy decode of ``source_id``.

        Args:
            source_id: Source file name or absolute URL
            limit: Stop after producing this many records (None = until the end)
            skip: Non-blank lines to pass over before producing records

        Returns:
            A single-use ``RecordStream``; nothing is fetched until iteration starts
        """
        logger.debug(f"Decoding {source_id} (limit={limit}, skip={skip})")
        return RecordStream(self, source_id, limit, skip)
