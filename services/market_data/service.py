from typing import Any, List, Optional, Tuple

from core.config.settings import Settings
from core.logging import get_market_data_logger_safe, get_error_logger_safe
from core.utils.exceptions import DataShapeError
from services.requests.correlator import RequestCorrelator
from services.subscriptions.multiplexer import SubscriptionMultiplexer, Teardown

from .models import AssetSnapshot, RankMetric
from .store import MarketSnapshotStore
from .top_k import select_top_assets


class MarketDataService:
    """
    Loads the ranked asset set once through the request correlator and keeps
    its prices current from the multiplexed ``allMids`` stream.
    """

    def __init__(
        self,
        settings: Settings,
        correlator: RequestCorrelator,
        multiplexer: SubscriptionMultiplexer,
        store: MarketSnapshotStore,
    ):
        self.settings = settings
        self.correlator = correlator
        self.multiplexer = multiplexer
        self.store = store
        self.metric = RankMetric(settings.market_data.rank_metric)
        self.top_k = settings.market_data.top_k
        self._teardown: Optional[Teardown] = None
        self.logger = get_market_data_logger_safe("market_data_service")
        self.error_logger = get_error_logger_safe("market_data_errors")

    @property
    def is_streaming(self) -> bool:
        return self._teardown is not None

    async def load(self) -> List[AssetSnapshot]:
        """Fetch ``metaAndAssetCtxs``, select the top-K and seed the store.

        Re-invoking re-ranks. A payload of unexpected shape leaves the store untouched.
        """
        self.store.is_loading = True
        try:
            data = await self.correlator.request_info("metaAndAssetCtxs")
            try:
                universe, contexts = self._unpack(data)
            except DataShapeError as e:
                self.error_logger.error("Unexpected metaAndAssetCtxs payload", field=e.field, error=e.message)
                return []
            tickers = select_top_assets(universe, contexts, self.metric.value, self.top_k)
            self.store.set_tickers(tickers)
        finally:
            self.store.is_loading = False

        self.logger.info("📊 Market snapshot loaded", universe=len(universe),
                         selected=len(tickers), metric=self.metric.value)
        return tickers

    @staticmethod
    def _unpack(data: Any) -> Tuple[list, list]:
        if not isinstance(data, (list, tuple)) or len(data) < 2:
            raise DataShapeError("Expected [meta, assetContexts]", field="payload.data", value=data)
        meta, contexts = data[0], data[1]
        universe = meta.get("universe") if isinstance(meta, dict) else None
        if not isinstance(universe, list):
            raise DataShapeError("Missing meta.universe list", field="universe", value=meta)
        if not isinstance(contexts, list):
            raise DataShapeError("Asset contexts are not a list", field="assetCtxs", value=contexts)
        return universe, contexts

    def start_streaming(self) -> bool:
        """Subscribe to ``allMids``; only enabled once tickers exist."""
        if self._teardown is not None:
            return True
        enabled = bool(self.store.tickers)
        teardown = self.multiplexer.subscribe("allMids", {}, self._on_all_mids, enabled=enabled)
        if not enabled:
            self.logger.info("allMids stream not started: no tickers loaded")
            return False
        self._teardown = teardown
        return True

    def _on_all_mids(self, data: Any) -> None:
        mids = data.get("mids") if isinstance(data, dict) else None
        if not isinstance(mids, dict):
            return
        self.store.handle_mids_tick(mids)

    def stop(self) -> None:
        teardown, self._teardown = self._teardown, None
        if teardown is not None:
            teardown()
