# Ledger Service Models
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class PositionSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class LedgerPosition(BaseModel):
    """A discrete position rebuilt from its OPEN (and optional CLOSE) ledger rows"""
    id: str
    agent_id: Optional[str] = None
    asset: Optional[str] = None
    side: PositionSide
    status: PositionStatus
    size: float
    collateral: float
    quantity: float
    entry_price: float
    exit_price: Optional[float] = None
    entry_timestamp: str = ""
    exit_timestamp: Optional[str] = None
    leverage: float = 1.0
    realized_pnl: Optional[float] = None
    account_id: Optional[str] = None
    user_id: Optional[str] = None
    type: Optional[str] = None  # paper | real
