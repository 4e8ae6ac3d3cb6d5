"""
Message kinds carried by the stress-test feed.

Default frames carry ``{"outputLine": ...}`` or ``{"error": ...}`` (the error
wins when both are present). A ``done`` frame carries the final
``{"outputLine": ...}``. Tagged ``error`` frames never reach this decoder:
the subscription reports them as transport errors.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from ..stream.sse_parser import SSEFrame

log = logging.getLogger(__name__)

DONE_EVENT = "done"


@dataclass(frozen=True)
class OutputLine:
    """One line of incremental test output."""

    line: str


@dataclass(frozen=True)
class RunCompleted:
    """The test finished; ``line`` is the closing output line, if any."""

    line: Optional[str] = None


@dataclass(frozen=True)
class RunFailed:
    """The backend reported a failure after the test started."""

    error: str


LoadTestMessage = Union[OutputLine, RunCompleted, RunFailed]


def _parse_object(data: str) -> Optional[Dict[str, Any]]:
    if not data:
        return None
    try:
        payload = json.loads(data)
    except (ValueError, RecursionError) as e:
        log.debug(f"Malformed stress test payload: {type(e).__name__}: {e}")
        return None
    return payload if isinstance(payload, dict) else None


def _output_line(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    if not payload:
        return None
    line = payload.get("outputLine")
    if line is None:
        return None
    return line if isinstance(line, str) else str(line)


def decode_load_test_frame(frame: SSEFrame) -> Optional[LoadTestMessage]:
    """Decode a stress-test frame, or return None to skip it."""
    if frame.event == DONE_EVENT:
        # A done frame ends the run even when its payload is unreadable
        return RunCompleted(line=_output_line(_parse_object(frame.data)))

    if not frame.is_default:
        return None

    payload = _parse_object(frame.data)
    if payload is None:
        return None

    error = payload.get("error")
    if error:
        return RunFailed(error=str(error))

    line = _output_line(payload)
    if line is None:
        return None
    return OutputLine(line=line)
