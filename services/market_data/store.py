# Ranked asset snapshot, refreshed in place by throttled mid-price ticks
from typing import Callable, Dict, List, Mapping, Optional

from core.config.settings import Settings
from core.logging import get_market_data_logger_safe, get_error_logger_safe
from core.utils.parsing import now_ms, to_number

from .models import AssetSnapshot, MarketSnapshotStats
from .top_k import compute_percent_change

MidsListener = Callable[[Dict[str, str]], None]


class MarketSnapshotStore:
    """Holds the selected top-K assets and the latest full mids map.

    The ranked set is only replaced by ``set_tickers``; ticks never re-rank.
    """

    def __init__(self, settings: Settings, clock: Callable[[], float] = now_ms):
        self.settings = settings
        self.min_update_interval_ms = settings.market_data.min_update_interval_ms
        self._clock = clock

        self._tickers: List[AssetSnapshot] = []
        self._mids: Dict[str, str] = {}
        self._listeners: List[MidsListener] = []
        self.is_loading = False

        self.stats = MarketSnapshotStats()
        self.logger = get_market_data_logger_safe("market_snapshot_store")
        self.error_logger = get_error_logger_safe("market_data_errors")

    @property
    def tickers(self) -> List[AssetSnapshot]:
        return list(self._tickers)

    @property
    def mids(self) -> Dict[str, str]:
        return dict(self._mids)

    @property
    def dropped_ticks(self) -> int:
        return self.stats.dropped_ticks

    def get_ticker(self, symbol: str) -> Optional[AssetSnapshot]:
        """Look up by exchange coin name; an exact match wins over a case-insensitive one."""
        folded = None
        for ticker in self._tickers:
            if ticker.symbol == symbol:
                return ticker
            if folded is None and ticker.symbol.casefold() == symbol.casefold():
                folded = ticker
        return folded

    def set_tickers(self, tickers: List[AssetSnapshot]) -> None:
        self._tickers = list(tickers)
        self.stats.tickers = len(self._tickers)
        self.logger.info("Ranked tickers set", count=len(self._tickers),
                         symbols=[t.symbol for t in self._tickers])

    def add_listener(self, listener: MidsListener) -> Callable[[], None]:
        """Register a callback run with the full mids map after each applied tick."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def update_tickers(self, mids: Mapping[str, str], timestamp: float) -> None:
        """Overwrite price fields of the ranked set from ``mids``.

        A symbol missing from ``mids`` or carrying an unparseable price keeps
        its previous price. Every ticker is stamped with ``timestamp``.
        """
        for ticker in self._tickers:
            mid = to_number(mids.get(ticker.symbol))
            if mid is not None:
                ticker.mid_price = mid
                ticker.price = mid
                ticker.percent_change = compute_percent_change(mid, ticker.prev_day_price)
            ticker.last_updated = timestamp
        self._mids = dict(mids)

    def handle_mids_tick(self, mids: Mapping[str, str], timestamp_ms: Optional[float] = None) -> bool:
        """Apply a tick unless it arrives within the minimum update interval.

        Early ticks are dropped, not queued. Returns True if the tick was applied.
        """
        ts = self._clock() if timestamp_ms is None else timestamp_ms
        last = self.stats.last_applied_ms
        if last is not None and ts - last < self.min_update_interval_ms:
            self.stats.dropped_ticks += 1
            return False

        self.stats.last_applied_ms = ts
        self.stats.applied_ticks += 1
        self.update_tickers(mids, ts)

        snapshot = self.mids
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                self.error_logger.error("Mids listener failed", error=str(e), exc_info=True)
        return True
