# Account State Service Models
from typing import Any, Dict, List, Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class HistoryPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: float
    value: float


class TimeframePnl(BaseModel):
    """Equity change over one portfolio timeframe, anchored at its first value"""
    model_config = ConfigDict(frozen=True)

    first: float = 0.0
    last: float = 0.0
    pnl: float = 0.0
    pnl_pct: float = 0.0


class LivePosition(BaseModel):
    """Open perp position re-priced against live mids. Always rebuilt, never mutated."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    size: float
    entry_price: float
    mark_price: float
    unrealized_pnl: float
    live_pnl_pct: float
    position_value: float
    leverage: Optional[float] = None
    liquidation_price: Optional[float] = None
    margin_used: Optional[float] = None
    roe: Optional[float] = None
    cum_funding_all_time: float = 0.0


class AccountSnapshot(BaseModel):
    """Derived view of one account.

    ``raw_state`` is a private deep copy of the exchange state it was derived
    from; live re-derivation always starts from it.
    """
    model_config = ConfigDict(frozen=True)

    account_value: float
    base_account_value: float
    stale_unrealized_pnl: float
    total_open_pnl: float
    total_ntl_pos: float
    withdrawable: Optional[float] = None
    positions: List[LivePosition] = Field(default_factory=list)
    pnl_history: Dict[str, TimeframePnl] = Field(default_factory=dict)
    raw_history: Dict[str, List[HistoryPoint]] = Field(default_factory=dict)
    raw_state: Dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)

    def get_position(self, symbol: str) -> Optional[LivePosition]:
        for position in self.positions:
            if position.symbol == symbol:
                return position
        return None


class AccountEntry(BaseModel):
    """Per-account cache slot with loading/error state"""
    snapshot: Optional[AccountSnapshot] = None
    is_loading: bool = False
    error: Optional[str] = None
    last_refreshed: Optional[datetime] = None
    last_synced: Optional[datetime] = None
