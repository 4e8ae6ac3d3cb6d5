"""
Metrics snapshot model and the reducer that keeps it in step with the feed.
"""

import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..stream.sse_parser import SSEFrame

log = logging.getLogger(__name__)


class MetricsSnapshot(BaseModel):
    """
    The complete current value of the service's observable load metrics.

    Every field is optional: a feed message that omits a field yields None for
    it, because each message replaces the previous snapshot wholesale.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    global_tokens_used: Optional[int] = Field(default=None, alias="globalTokensUsed")
    global_token_bucket_cap: Optional[int] = Field(default=None, alias="globalTokenBucketCap")
    active_users: Optional[int] = Field(default=None, alias="activeUsers")
    current_url_count: Optional[int] = Field(default=None, alias="currentUrlCount")

    @property
    def load_percent(self) -> Optional[float]:
        return load_percent(self)


EMPTY_SNAPSHOT = MetricsSnapshot()


def load_percent(snapshot: MetricsSnapshot) -> Optional[float]:
    """
    Percentage of the global token bucket in use.

    Not clamped: a value above 100 means the backend reported more tokens used
    than the bucket holds. Returns None (invalid) when the capacity is zero or
    either value is missing.
    """
    used = snapshot.global_tokens_used
    cap = snapshot.global_token_bucket_cap
    if used is None or cap is None or cap == 0:
        return None
    return 100 * used / cap


def decode_metrics_frame(frame: SSEFrame) -> Optional[dict]:
    """Decode a metrics-feed frame into its raw JSON object, or None to skip it."""
    if not frame.is_default or not frame.data:
        return None
    try:
        payload = json.loads(frame.data)
    except (ValueError, RecursionError) as e:
        log.debug(f"Malformed metrics payload: {type(e).__name__}: {e}")
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def reduce_snapshot(previous: MetricsSnapshot, message: Any) -> MetricsSnapshot:
    """
    Turn a raw feed message into the next snapshot.

    Args:
        previous: The snapshot currently held
        message: A decoded JSON object, or the raw payload text

    Returns:
        A new snapshot built only from ``message`` (``{}`` yields a snapshot
        with every field missing), or ``previous`` unchanged when the payload
        is empty or cannot be read as metrics.
    """
    if isinstance(message, str):
        message = decode_metrics_frame(SSEFrame(data=message))
    if not isinstance(message, dict):
        return previous

    try:
        return MetricsSnapshot.model_validate(message)
    except ValidationError as e:
        log.debug(f"Ignoring metrics message with invalid fields: {e.error_count()} error(s)")
        return previous
