"""
Stream decoder service - Incremental NDJSON decoding for streaming chat replies.
Independent of the transport: feed it byte chunks as they arrive.
"""

from __future__ import annotations
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..errors import ProtocolError


class NDJSONLineDecoder:
    """Splits an incrementally delivered byte stream into complete lines.

    ``bytes_consumed`` only moves forward, and only past bytes that ended in a
    newline; an unterminated tail is held back until the rest of it arrives.
    No byte is ever split into lines twice.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._encoding = encoding
        self._pending = bytearray()
        self._bytes_received = 0
        self._bytes_consumed = 0

    @property
    def bytes_received(self) -> int:
        return self._bytes_received

    @property
    def bytes_consumed(self) -> int:
        return self._bytes_consumed

    @property
    def pending(self) -> bytes:
        return bytes(self._pending)

    def feed(self, chunk: bytes) -> List[str]:
        """Add newly arrived bytes and return the lines they completed."""
        if not chunk:
            return []
        self._pending.extend(chunk)
        self._bytes_received += len(chunk)

        cut = self._pending.rfind(b"\n")
        if cut < 0:
            return []
        complete = bytes(self._pending[:cut + 1])
        del self._pending[:cut + 1]
        self._bytes_consumed += len(complete)
        return self._split(complete)

    def flush(self) -> List[str]:
        """Return whatever is left once the stream has ended."""
        if not self._pending:
            return []
        tail = bytes(self._pending)
        self._pending.clear()
        self._bytes_consumed += len(tail)
        return self._split(tail)

    def _split(self, data: bytes) -> List[str]:
        lines = []
        for raw in data.split(b"\n"):
            text = raw.decode(self._encoding, errors="replace").strip()
            if text:
                lines.append(text)
        return lines


class ChatStreamParser:
    """Turns ``/api/chat`` NDJSON records into tokens and a full reply.

    Lines that are not valid JSON are skipped. A record with an ``error``
    field raises ProtocolError and the parser refuses further input, so no
    token is emitted after it.
    """

    def __init__(
        self,
        on_token: Optional[Callable[[str], None]] = None,
        decoder: Optional[NDJSONLineDecoder] = None,
        logger: Optional[logging.Logger] = None
    ):
        self._on_token = on_token
        self._decoder = decoder or NDJSONLineDecoder()
        self._logger = logger or logging.getLogger(__name__)
        self._parts: List[str] = []
        self._done = False
        self._failed: Optional[ProtocolError] = None
        self.records_seen = 0
        self.lines_skipped = 0

    @property
    def content(self) -> str:
        return "".join(self._parts)

    @property
    def done(self) -> bool:
        """True once a record with ``done: true`` has been seen."""
        return self._done

    @property
    def decoder(self) -> NDJSONLineDecoder:
        return self._decoder

    def feed(self, chunk: bytes) -> List[str]:
        """Consume a chunk; return the tokens it produced (in order)."""
        self._check_failed()
        return self._handle_lines(self._decoder.feed(chunk))

    def finish(self) -> str:
        """Parse any unconsumed bytes and return the accumulated reply."""
        self._check_failed()
        self._handle_lines(self._decoder.flush())
        return self.content

    def feed_all(self, chunks: Iterable[bytes]) -> str:
        for chunk in chunks:
            self.feed(chunk)
        return self.finish()

    def _check_failed(self) -> None:
        if self._failed is not None:
            raise self._failed

    def _handle_lines(self, lines: List[str]) -> List[str]:
        tokens: List[str] = []
        for line in lines:
            try:
                record = json.loads(line)
            except ValueError:
                self.lines_skipped += 1
                self._logger.debug(f"Skipping unparseable stream line ({len(line)} chars)")
                continue
            if not isinstance(record, dict):
                self.lines_skipped += 1
                continue
            self.records_seen += 1
            token = self._handle_record(record)
            if token:
                tokens.append(token)
        return tokens

    def _handle_record(self, record: Dict[str, Any]) -> str:
        error = record.get("error")
        if error:
            self._failed = ProtocolError(str(error))
            raise self._failed

        if record.get("done"):
            self._done = True

        message = record.get("message")
        token = ""
        if isinstance(message, dict):
            token = message.get("content") or ""
        if token:
            self._parts.append(token)
            if self._on_token:
                self._on_token(token)
        return token
