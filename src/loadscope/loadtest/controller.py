"""
Stress-test run state machine.

    READY --start()--> RUNNING --done event / {error}--> DONE
      ^                   |                                |
      |<--transport error-+                                |
      |<--------------------- reset() / stop() ------------+

A transport error while RUNNING (including a server-sent ``error`` event) is
treated as the backend refusing to start the test, usually because the
per-client rate limit was hit, so the run returns to READY. An ``{error}``
payload comes from a test that did start, so the run ends in DONE.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional

import httpx

from ..config import LoadscopeConfig
from ..exceptions import StreamTransportError
from ..stream.subscription import StreamSubscription, SubscriptionSlot
from .messages import (
    LoadTestMessage,
    OutputLine,
    RunCompleted,
    RunFailed,
    decode_load_test_frame,
)
from .recorder import RunTranscriptRecorder

log = logging.getLogger(__name__)

RATE_LIMIT_ADVISORY = (
    "Rate limit for stress test feature reached or connection may have failed. "
    "Try again in a minute."
)
START_FAILED_ADVISORY = "Could not start the stress test. Please try again later."


class RunStatus(str, Enum):
    READY = "ready"
    RUNNING = "running"
    DONE = "done"


@dataclass
class LoadTestRun:
    """State of the current (or last) stress-test run."""

    status: RunStatus = RunStatus.READY
    output_log: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.status is RunStatus.RUNNING

    @property
    def can_start(self) -> bool:
        return self.status is not RunStatus.RUNNING

    @property
    def can_reset(self) -> bool:
        """Stop while running, reset once done; nothing to do when ready."""
        return self.status is not RunStatus.READY

    def copy(self) -> "LoadTestRun":
        return replace(self, output_log=list(self.output_log))


RunListener = Callable[[LoadTestRun], None]


class LoadTestController:
    """
    Drives one stress-test run at a time over the stress-test feed.

    The controller is the only owner of its run state and of its subscription;
    the subscription is closed whenever the run leaves RUNNING.
    """

    def __init__(
        self,
        config: LoadscopeConfig,
        listener: Optional[RunListener] = None,
        recorder: Optional[RunTranscriptRecorder] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._listener = listener
        self._recorder = recorder
        self._transport = transport
        self._slot: SubscriptionSlot[LoadTestMessage] = SubscriptionSlot("stress-test")
        self._run = LoadTestRun()
        self._settled = asyncio.Event()
        self._settled.set()

    @property
    def run(self) -> LoadTestRun:
        """A copy of the current run state."""
        return self._run.copy()

    @property
    def status(self) -> RunStatus:
        return self._run.status

    @property
    def output_log(self) -> List[str]:
        return list(self._run.output_log)

    @property
    def error_message(self) -> Optional[str]:
        return self._run.error_message

    @property
    def subscription(self) -> Optional[StreamSubscription[LoadTestMessage]]:
        return self._slot.current

    def start(self) -> bool:
        """
        Start a new run.

        Returns:
            True if the run is now RUNNING. False if a run was already in
            progress, or if the stream could not be set up (the run is then
            READY with an error message).
        """
        if not self._run.can_start:
            log.warning("Stress test already running; ignoring start request")
            return False

        # Drop anything left from the previous run before opening a new channel
        self._slot.clear()
        self._run = LoadTestRun(status=RunStatus.RUNNING)
        self._settled.clear()
        if self._recorder:
            self._recorder.reset()

        try:
            subscription = StreamSubscription(
                url=self.config.stress_test_url,
                decoder=decode_load_test_frame,
                on_message=self._handle_message,
                on_transport_error=self._handle_transport_error,
                headers=self.config.auth_headers(),
                connect_timeout=self.config.connect_timeout,
                transport=self._transport,
                name="stress-test",
            )
            self._slot.open(subscription)
        except Exception:
            log.exception("Failed to open stress test stream")
            self._slot.clear()
            self._finish(RunStatus.READY, error_message=START_FAILED_ADVISORY)
            return False

        log.info(f"Stress test started against {self.config.stress_test_url}")
        self._notify()
        return True

    def reset(self) -> None:
        """Stop a running test or clear a finished one, returning to READY."""
        if self._run.is_running:
            log.info("Stopping stress test")
        self._slot.clear()
        self._run = LoadTestRun()
        self._settled.set()
        self._notify()

    stop = reset

    async def wait_settled(self) -> LoadTestRun:
        """Wait until the run is no longer RUNNING and return its state."""
        await self._settled.wait()
        return self.run

    def _handle_message(self, message: LoadTestMessage) -> None:
        if not self._run.is_running:
            return

        if isinstance(message, RunFailed):
            self._record("error", {"error": message.error})
            log.warning(f"Stress test failed: {message.error}")
            self._slot.clear()
            self._finish(RunStatus.DONE, error_message=message.error)
        elif isinstance(message, RunCompleted):
            self._record("done", {"outputLine": message.line})
            if message.line is not None:
                self._run.output_log.append(message.line)
            log.info("Stress test completed")
            self._slot.clear()
            self._finish(RunStatus.DONE)
        elif isinstance(message, OutputLine):
            self._record("message", {"outputLine": message.line})
            self._run.output_log.append(message.line)
            self._notify()

    def _handle_transport_error(self, error: StreamTransportError) -> None:
        if not self._run.is_running:
            return
        self._record(
            "transport_error",
            {"message": str(error), "status_code": error.status_code, "detail": error.detail},
        )
        self._slot.clear()
        self._finish(RunStatus.READY, error_message=RATE_LIMIT_ADVISORY)

    def _finish(self, status: RunStatus, error_message: Optional[str] = None) -> None:
        self._run.status = status
        if error_message is not None:
            self._run.error_message = error_message
        self._settled.set()
        self._notify()

    def _record(self, event_type: str, data: dict) -> None:
        if self._recorder:
            self._recorder.record_event(event_type, data)

    def _notify(self) -> None:
        if self._listener:
            try:
                self._listener(self.run)
            except Exception:
                log.exception("Stress test listener failed")
