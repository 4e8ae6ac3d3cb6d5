"""
Records a stress-test run to a YAML transcript for later inspection.
"""
import yaml
from pathlib import Path
from typing import TYPE_CHECKING, List, Dict, Any, Optional
from dataclasses import dataclass, asdict
from datetime import datetime, timezone

if TYPE_CHECKING:
    from .controller import LoadTestRun


@dataclass
class RecordedEvent:
    """A feed event seen by the controller, with arrival metadata."""

    sequence: int
    timestamp: str
    event_type: str
    data: Dict[str, Any]


class RunTranscriptRecorder:
    """
    Collects the events of the current run and writes them with the run's
    final state.
    """

    def __init__(self):
        self._events: List[RecordedEvent] = []
        self._sequence = 0
        self._started_at: Optional[str] = None

    def reset(self):
        """Forget everything recorded so far; called when a run starts."""
        self._events = []
        self._sequence = 0
        self._started_at = _utc_now()

    def record_event(self, event_type: str, data: Dict[str, Any]):
        self._sequence += 1
        self._events.append(
            RecordedEvent(
                sequence=self._sequence,
                timestamp=_utc_now(),
                event_type=event_type,
                data=data,
            )
        )

    def save(self, output_path: Path, run: "LoadTestRun") -> Path:
        """Write the transcript and the run's final state to ``output_path``."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        transcript = {
            "started_at": self._started_at,
            "recorded_at": _utc_now(),
            "status": run.status.value,
            "error_message": run.error_message,
            "output_log": list(run.output_log),
            "total_events": len(self._events),
            "events": [asdict(e) for e in self._events],
        }

        with open(output_path, "w") as f:
            yaml.safe_dump(
                transcript,
                f,
                sort_keys=False,
                allow_unicode=True,
                default_flow_style=False,
                width=120,
            )

        return output_path

    def get_events(self) -> List[RecordedEvent]:
        return list(self._events)

    def get_event_count(self) -> int:
        return len(self._events)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
