"""Newline framing for the child process's stdout.

Splits a stream of chunks into lines and parses each complete line as one
JSON object. An unterminated trailing fragment is held back until more data
arrives or the stream closes. Parsing is lenient: a malformed line is logged
and dropped, and never stops framing of the lines after it.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from ..errors import ProtocolParseError

__all__ = [
    "LineFramer",
    "parse_record",
]

logger = logging.getLogger(__name__)

DELIMITER = "\n"


def parse_record(line: str) -> dict[str, Any]:
    """Parse one candidate line as a JSON object.

    Args:
        line: A complete line without its delimiter

    Returns:
        The decoded object

    Raises:
        ProtocolParseError: The line is not JSON, or not a JSON object
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolParseError(line, str(e)) from e
    if not isinstance(data, dict):
        raise ProtocolParseError(line, f"expected object, got {type(data).__name__}")
    return data


class LineFramer:
    """Accumulates chunks and emits complete lines.

    Accepts text or bytes. Bytes go through an incremental decoder so a
    multi-byte character split across two reads survives intact.

    Example:
        framer = LineFramer()
        framer.feed('{"a":1}\\n{"')      # ['{"a":1}']
        framer.feed('"b":2}\\n')         # ['{"b":2}']
        framer.close()                  # []
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._fragment = ""
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._closed = False
        self.dropped = 0

    @property
    def pending(self) -> str:
        """The unterminated fragment held back so far."""
        return self._fragment

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: str | bytes) -> list[str]:
        """Append a chunk and return every line it completed.

        Args:
            chunk: Raw stdout data

        Returns:
            Complete lines, delimiter stripped, in arrival order
        """
        if self._closed:
            raise RuntimeError("LineFramer is closed")
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        if not chunk:
            return []

        segments = (self._fragment + chunk).split(DELIMITER)
        self._fragment = segments.pop()
        return segments

    def close(self) -> list[str]:
        """Flush the decoder and the trailing fragment.

        A process may exit without a final newline, so a non-empty fragment
        is returned as one last candidate line. Calling this twice returns
        nothing the second time.
        """
        if self._closed:
            return []
        self._closed = True

        tail = self._fragment + self._decoder.decode(b"", final=True)
        self._fragment = ""
        if not tail:
            return []
        # The decoder flush may itself complete lines
        return [line for line in tail.split(DELIMITER) if line]

    def feed_records(self, chunk: str | bytes) -> list[dict[str, Any]]:
        """Frame a chunk and return the records that parsed."""
        return self._parse_lines(self.feed(chunk))

    def close_records(self) -> list[dict[str, Any]]:
        """Flush and parse the trailing fragment."""
        return self._parse_lines(self.close())

    def _parse_lines(self, lines: list[str]) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            logger.debug(f"stdout: {stripped[:500]}")
            try:
                records.append(parse_record(stripped))
            except ProtocolParseError as e:
                self.dropped += 1
                logger.debug(f"Dropping line: {e}")
        return records
