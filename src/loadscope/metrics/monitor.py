"""
Live metrics monitor: owns the metrics-feed subscription and its snapshot.
"""

import asyncio
import logging
from typing import Callable, Optional

import httpx

from ..config import LoadscopeConfig
from ..exceptions import StreamTransportError
from ..stream.subscription import StreamSubscription, SubscriptionSlot
from .snapshot import EMPTY_SNAPSHOT, MetricsSnapshot, decode_metrics_frame, reduce_snapshot

log = logging.getLogger(__name__)

SnapshotListener = Callable[[MetricsSnapshot], None]


class MetricsMonitor:
    """
    Keeps a local MetricsSnapshot consistent with the metrics feed.

    ``start()`` mounts the subscription and ``stop()`` unmounts it. A transport
    failure closes the subscription without reconnecting; the last snapshot
    is kept and ``connected`` turns False.
    """

    def __init__(
        self,
        config: LoadscopeConfig,
        listener: Optional[SnapshotListener] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._listener = listener
        self._transport = transport
        self._slot: SubscriptionSlot[dict] = SubscriptionSlot("metrics")
        self._snapshot = EMPTY_SNAPSHOT
        self._updates = 0
        self._last_error: Optional[StreamTransportError] = None
        self._changed = asyncio.Event()

    @property
    def snapshot(self) -> MetricsSnapshot:
        return self._snapshot

    @property
    def load_percent(self) -> Optional[float]:
        return self._snapshot.load_percent

    @property
    def update_count(self) -> int:
        return self._updates

    @property
    def connected(self) -> bool:
        return self._slot.is_active

    @property
    def last_error(self) -> Optional[StreamTransportError]:
        return self._last_error

    def start(self) -> None:
        """Open the metrics subscription, replacing any previous one."""
        self._last_error = None
        self._changed.clear()
        subscription = StreamSubscription(
            url=self.config.metrics_url,
            decoder=decode_metrics_frame,
            on_message=self._handle_message,
            on_transport_error=self._handle_transport_error,
            connect_timeout=self.config.connect_timeout,
            transport=self._transport,
            name="metrics",
        )
        self._slot.open(subscription)
        log.info(f"Subscribed to metrics feed at {self.config.metrics_url}")

    def stop(self) -> None:
        """Close the metrics subscription. Safe to call repeatedly."""
        self._slot.clear()
        self._changed.set()

    async def wait_for_update(self) -> Optional[MetricsSnapshot]:
        """
        Wait for the next snapshot replacement.

        Returns:
            The new snapshot, or None if the feed stopped first.
        """
        seen = self._updates
        while self._updates == seen:
            if not self.connected:
                return None
            self._changed.clear()
            await self._changed.wait()
        return self._snapshot

    def _handle_message(self, message: dict) -> None:
        snapshot = reduce_snapshot(self._snapshot, message)
        if snapshot is self._snapshot:
            return
        self._snapshot = snapshot
        self._updates += 1
        self._changed.set()
        if self._listener:
            self._listener(snapshot)

    def _handle_transport_error(self, error: StreamTransportError) -> None:
        log.error(f"Metrics feed unavailable: {error}")
        self._last_error = error
        self.stop()
