"""Incremental parser for `event:`/`data:` server-sent event streams."""

import codecs
from typing import List, Tuple, Union

from pydantic import BaseModel


class SSEEvent(BaseModel):
    """One blank-line-delimited record."""
    event: str = "message"
    data: str = ""


def parse_records(buffer: str) -> Tuple[List[SSEEvent], str]:
    """
    Split complete records off the front of a buffer.

    Args:
        buffer: Decoded text with "\\n" line endings

    Returns:
        (complete events, unconsumed remainder)
    """
    events = []
    idx = buffer.find("\n\n")
    while idx != -1:
        record = buffer[:idx]
        buffer = buffer[idx + 2:]

        event = ""
        data_lines = []
        for line in record.split("\n"):
            if line.startswith(":"):
                continue  # comment / keep-alive ping
            if line.startswith("event:"):
                event = line[len("event:"):].strip()
            elif line.startswith("data:"):
                value = line[len("data:"):]
                data_lines.append(value[1:] if value.startswith(" ") else value)

        data = "\n".join(data_lines)
        if event or data:
            events.append(SSEEvent(event=event or "message", data=data))

        idx = buffer.find("\n\n")

    return events, buffer


class SSEParser:
    """Feeds raw bytes in, yields complete events out."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: Union[bytes, str]) -> List[SSEEvent]:
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        self._buffer += text
        # Normalise CRLF; a lone trailing CR may still pair with the next chunk's LF
        self._buffer = self._buffer.replace("\r\n", "\n")
        events, self._buffer = parse_records(self._buffer)
        return events

    @property
    def pending(self) -> str:
        return self._buffer

    def flush(self) -> List[SSEEvent]:
        """
        Drain what is left once the stream has ended.

        Bytes held back by the decoder are decoded, and a final record
        without its trailing blank line is returned as a complete event.
        """
        self._buffer += self._decoder.decode(b"", final=True)
        self._buffer = self._buffer.replace("\r\n", "\n").rstrip("\r\n")
        if not self._buffer.strip():
            self._buffer = ""
            return []
        events, _ = parse_records(self._buffer + "\n\n")
        self._buffer = ""
        return events
