from .manager import ConnectionManager
from .dispatcher import InboundDispatcher
from .liveness import LivenessMonitor, classify_latency
from .models import ConnectionState, ConnectionStats, LatencyBucket

__all__ = [
    "ConnectionManager",
    "InboundDispatcher",
    "LivenessMonitor",
    "classify_latency",
    "ConnectionState",
    "ConnectionStats",
    "LatencyBucket",
]
