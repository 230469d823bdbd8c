# Connection Service Models
from enum import Enum
from typing import Optional
from datetime import datetime

from pydantic import BaseModel


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class LatencyBucket(str, Enum):
    """Connectivity indicator buckets"""
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


class ConnectionStats(BaseModel):
    """WebSocket connection statistics"""
    connection_attempts: int = 0
    successful_connections: int = 0
    disconnections: int = 0
    messages_received: int = 0
    messages_sent: int = 0
    last_connection_time: Optional[datetime] = None
    last_disconnection_time: Optional[datetime] = None
    last_disconnect_reason: Optional[str] = None
    current_status: ConnectionState = ConnectionState.DISCONNECTED


class DispatchStats(BaseModel):
    """Inbound frame counters by message kind"""
    responses: int = 0
    streams: int = 0
    acks: int = 0
    errors: int = 0
    pongs: int = 0
    dropped: int = 0
