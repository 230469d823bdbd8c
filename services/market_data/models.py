# Market Data Service Models
from typing import Optional, List
from enum import Enum

from pydantic import BaseModel, Field


class RankMetric(str, Enum):
    """AssetSnapshot fields usable as the top-K ranking metric"""
    DAY_NOTIONAL_VOLUME = "day_notional_volume"
    OPEN_INTEREST = "open_interest"
    PERCENT_CHANGE = "percent_change"
    FUNDING_RATE = "funding_rate"


class AssetSnapshot(BaseModel):
    """One ranked tradable asset.

    Selected once from ``metaAndAssetCtxs``; afterwards only the price fields
    (``price``, ``mid_price``, ``percent_change``, ``last_updated``) change, in
    place, from the ``allMids`` stream.
    """
    symbol: str
    asset_id: int
    mid_price: Optional[float] = None
    price: Optional[float] = None
    mark_price: Optional[float] = None
    oracle_price: Optional[float] = None
    prev_day_price: Optional[float] = None
    day_notional_volume: Optional[float] = None
    funding_rate: Optional[float] = None
    open_interest: Optional[float] = None
    premium: Optional[float] = None
    impact_prices: Optional[List[Optional[float]]] = None
    size_decimals: Optional[int] = None
    max_leverage: Optional[int] = None
    percent_change: Optional[float] = None
    last_updated: Optional[float] = Field(default=None, description="Epoch ms of the last applied price tick")


class MarketSnapshotStats(BaseModel):
    tickers: int = 0
    applied_ticks: int = 0
    dropped_ticks: int = 0
    last_applied_ms: Optional[float] = None
