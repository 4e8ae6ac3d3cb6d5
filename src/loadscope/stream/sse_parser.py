"""
Incremental parser for ``text/event-stream`` bodies.

SSE format:
    event: <event_type>
    data: <data>
    id: <id>
    retry: <retry_ms>
    (blank line ends the frame)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

log = logging.getLogger(__name__)

DEFAULT_EVENT = "message"


@dataclass(frozen=True)
class SSEFrame:
    """One logical message from the stream, optionally tagged with an event name."""

    event: str = DEFAULT_EVENT
    data: str = ""
    id: Optional[str] = None

    @property
    def is_default(self) -> bool:
        return self.event == DEFAULT_EVENT


class SSEParser:
    """
    Turns arbitrarily split text chunks into complete frames.

    Frames are emitted only when their terminating blank line has arrived, so
    a frame split across chunks is never dispatched half-read.
    """

    def __init__(self):
        self._buffer = ""
        self._event: Optional[str] = None
        self._data_lines: List[str] = []
        self._id: Optional[str] = None

    def feed(self, chunk: str) -> List[SSEFrame]:
        """Consume a chunk of text and return the frames it completed."""
        text = self._buffer + chunk
        # A trailing \r may be the first half of \r\n; hold it for the next chunk
        held = ""
        if text.endswith("\r"):
            text, held = text[:-1], "\r"
        # Normalize line endings: \r\n and bare \r both end a line
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        *complete_lines, remainder = text.split("\n")
        self._buffer = remainder + held

        frames: List[SSEFrame] = []
        for line in complete_lines:
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def _process_line(self, line: str) -> Optional[SSEFrame]:
        if not line:
            return self._dispatch()

        if line.startswith(":"):
            # Comment / keepalive
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value
        elif field == "data":
            self._data_lines.append(value)
        elif field == "id":
            self._id = value
        elif field == "retry":
            # Reconnection is never automatic here
            pass
        else:
            log.debug(f"Ignoring unknown SSE field: {field!r}")
        return None

    def _dispatch(self) -> Optional[SSEFrame]:
        event, data_lines, frame_id = self._event, self._data_lines, self._id
        self._event = None
        self._data_lines = []
        self._id = None

        # A frame needs data or an explicit event name to mean anything
        if not data_lines and event is None:
            return None

        return SSEFrame(
            event=event or DEFAULT_EVENT,
            data="\n".join(data_lines),
            id=frame_id,
        )
