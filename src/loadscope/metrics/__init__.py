from .monitor import MetricsMonitor
from .snapshot import MetricsSnapshot, load_percent, reduce_snapshot

__all__ = ["MetricsMonitor", "MetricsSnapshot", "load_percent", "reduce_snapshot"]
