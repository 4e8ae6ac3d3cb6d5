"""
Server-sent-events transport shared by the metrics and stress-test feeds.
"""
from .sse_parser import SSEFrame, SSEParser
from .subscription import StreamSubscription, SubscriptionSlot

__all__ = [
    "SSEFrame",
    "SSEParser",
    "StreamSubscription",
    "SubscriptionSlot",
]
