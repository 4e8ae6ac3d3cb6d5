"""
Generic server-sent-events subscription using httpx.

One ``StreamSubscription`` wraps one long-lived GET request. Each complete
frame goes through a per-feed decoder; decoded messages are dispatched to the
owner's handler, transport failures to the owner's error handler. The feeds
differ only in their decoder, so connect/parse/teardown lives here once.
"""

import asyncio
import logging
from typing import Callable, Dict, Generic, Optional, TypeVar

import httpx

from ..exceptions import StreamTransportError, SubscriptionSetupError
from .sse_parser import SSEFrame, SSEParser

log = logging.getLogger(__name__)

MessageT = TypeVar("MessageT")

Decoder = Callable[[SSEFrame], Optional[MessageT]]
MessageHandler = Callable[[MessageT], None]
TransportErrorHandler = Callable[[StreamTransportError], None]

ERROR_EVENT = "error"


class StreamSubscription(Generic[MessageT]):
    """
    A one-way push channel to a single endpoint.

    Handlers run on the event loop, in server-send order, from the
    subscription's read task. After ``close()`` returns no handler is invoked
    again and any data still in flight is discarded.

    Usage:
        subscription = StreamSubscription(
            url="http://localhost:8090/api/metrics/stream",
            decoder=decode_metrics_frame,
            on_message=monitor.handle_message,
            on_transport_error=monitor.handle_transport_error,
        )
        subscription.open()
        ...
        subscription.close()
    """

    def __init__(
        self,
        url: str,
        decoder: Decoder,
        on_message: MessageHandler,
        on_transport_error: TransportErrorHandler,
        headers: Optional[Dict[str, str]] = None,
        connect_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        name: str = "stream",
    ):
        """
        Args:
            url: Full URL of the event-stream endpoint
            decoder: Turns a frame into a message, or None to skip it
            on_message: Called once per decoded message
            on_transport_error: Called at most once when the channel fails
            headers: Extra request headers (e.g. a static API key)
            connect_timeout: Seconds allowed to connect; reads never time out
            transport: Optional httpx transport (tests inject a MockTransport)
            name: Label used in log messages
        """
        self.url = url
        self.name = name
        self._decoder = decoder
        self._on_message = on_message
        self._on_transport_error = on_transport_error
        self._headers = {
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
            **(headers or {}),
        }
        self._timeout = httpx.Timeout(None, connect=connect_timeout)
        self._transport = transport

        self._task: Optional[asyncio.Task] = None
        self._opened = False
        self._closed = False
        self._frames_received = 0

    @property
    def is_open(self) -> bool:
        """True between ``open()`` and the first of close or transport failure."""
        return self._opened and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def frames_received(self) -> int:
        return self._frames_received

    def open(self) -> "StreamSubscription[MessageT]":
        """
        Start the channel and return immediately.

        Must be called from a running event loop. Opening twice is an error.

        Raises:
            SubscriptionSetupError: If the read task cannot be started.
        """
        if self._opened:
            raise SubscriptionSetupError(f"{self.name} subscription already opened")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise SubscriptionSetupError(
                f"{self.name} subscription needs a running event loop", cause=e
            ) from e

        self._opened = True
        self._task = loop.create_task(self._run(), name=f"loadscope-{self.name}")
        log.debug(f"[{self.name}] Opening subscription to {self.url}")
        return self

    def close(self) -> None:
        """Close the channel. Safe to call any number of times, from anywhere."""
        if self._closed:
            return
        self._closed = True

        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

        log.debug(
            f"[{self.name}] Subscription closed after {self._frames_received} frames"
        )

    async def wait_closed(self) -> None:
        """Wait for the read task to finish after close or failure."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self) -> None:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                async with client.stream("GET", self.url, headers=self._headers) as response:
                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise StreamTransportError(
                            f"{self.name} stream rejected with status {response.status_code}",
                            status_code=response.status_code,
                            detail=body or None,
                        )

                    log.debug(
                        f"[{self.name}] Connected, status: {response.status_code}"
                    )
                    await self._consume(response)

            if not self._closed:
                raise StreamTransportError(f"{self.name} stream closed by server")

        except asyncio.CancelledError:
            log.debug(f"[{self.name}] Read task cancelled")
            raise
        except StreamTransportError as e:
            self._fail(e)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self._fail(
                StreamTransportError(
                    f"{self.name} stream connection failed: {type(e).__name__}: {e}"
                )
            )
        except Exception as e:
            log.exception(f"[{self.name}] Read loop failed")
            self._fail(
                StreamTransportError(
                    f"{self.name} stream read failed: {type(e).__name__}: {e}"
                )
            )

    async def _consume(self, response: httpx.Response) -> None:
        parser = SSEParser()
        async for chunk in response.aiter_text():
            if self._closed:
                return
            for frame in parser.feed(chunk):
                if self._closed:
                    return
                self._frames_received += 1
                if frame.event == ERROR_EVENT:
                    raise StreamTransportError(
                        f"{self.name} stream sent an error event",
                        detail=frame.data or None,
                    )
                self._dispatch(frame)

    def _dispatch(self, frame: SSEFrame) -> None:
        try:
            message = self._decoder(frame)
        except Exception:
            log.exception(f"[{self.name}] Decoder failed; skipping frame")
            return
        if message is None:
            log.debug(
                f"[{self.name}] Skipping frame event={frame.event!r} data={frame.data[:80]!r}"
            )
            return

        try:
            self._on_message(message)
        except Exception:
            log.exception(f"[{self.name}] Message handler failed")

    def _fail(self, error: StreamTransportError) -> None:
        if self._closed:
            return
        log.warning(f"[{self.name}] {error}")
        # The channel is gone; later close() calls are no-ops
        self._closed = True
        try:
            self._on_transport_error(error)
        except Exception:
            log.exception(f"[{self.name}] Transport error handler failed")


class SubscriptionSlot(Generic[MessageT]):
    """
    Holds at most one live subscription for a single owner.

    Each owner keeps its own slot, so one feed's teardown can never touch
    another feed's channel.
    """

    def __init__(self, owner: str):
        self.owner = owner
        self._current: Optional[StreamSubscription[MessageT]] = None

    @property
    def current(self) -> Optional[StreamSubscription[MessageT]]:
        return self._current

    @property
    def is_active(self) -> bool:
        return self._current is not None and self._current.is_open

    def open(self, subscription: StreamSubscription[MessageT]) -> StreamSubscription[MessageT]:
        """Close whatever the slot holds, then open and hold ``subscription``."""
        if self._current is not None and not self._current.is_closed:
            log.debug(f"[{self.owner}] Closing previous subscription before reopening")
        self.clear()
        self._current = subscription
        subscription.open()
        return subscription

    def clear(self) -> None:
        """Close and forget the held subscription, if any."""
        subscription, self._current = self._current, None
        if subscription is not None:
            subscription.close()


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
