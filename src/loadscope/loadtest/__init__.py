from .controller import (
    RATE_LIMIT_ADVISORY,
    START_FAILED_ADVISORY,
    LoadTestController,
    LoadTestRun,
    RunStatus,
)
from .messages import OutputLine, RunCompleted, RunFailed, decode_load_test_frame
from .recorder import RunTranscriptRecorder

__all__ = [
    "RATE_LIMIT_ADVISORY",
    "START_FAILED_ADVISORY",
    "LoadTestController",
    "LoadTestRun",
    "RunStatus",
    "OutputLine",
    "RunCompleted",
    "RunFailed",
    "decode_load_test_frame",
    "RunTranscriptRecorder",
]
