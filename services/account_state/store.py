# Per-account snapshot cache: one fetch per account, cheap re-derivation per tick
import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional

from core.config.settings import Settings
from core.logging import get_account_logger_safe, get_error_logger_safe, bind_account_context
from core.utils.exceptions import create_error_context
from services.market_data.store import MarketSnapshotStore
from services.requests.correlator import RequestCorrelator

from .models import AccountEntry, AccountSnapshot
from .processor import compute_live_pnl, process_snapshot


class AccountStore:
    """
    Caches an :class:`AccountEntry` per account key.

    ``initialize``/``refresh`` fetch portfolio history and clearinghouse state
    concurrently; ``sync``/``sync_all`` re-derive from live mids without a
    refetch. Failures are recorded on the entry and never raised.
    """

    def __init__(self, settings: Settings, correlator: RequestCorrelator, market_store: MarketSnapshotStore):
        self.settings = settings
        self.correlator = correlator
        self.market_store = market_store
        self._entries: Dict[str, AccountEntry] = {}
        self.logger = get_account_logger_safe("account_store")
        self.error_logger = get_error_logger_safe("account_errors")

        market_store.add_listener(self.sync_all)

    @property
    def accounts(self) -> Dict[str, AccountEntry]:
        return dict(self._entries)

    def get(self, key: str) -> Optional[AccountEntry]:
        return self._entries.get(key)

    def get_snapshot(self, key: str) -> Optional[AccountSnapshot]:
        entry = self._entries.get(key)
        return entry.snapshot if entry else None

    async def initialize(self, key: str) -> AccountEntry:
        """Fetch and process the account once; no-op if an entry exists without error."""
        current = self._entries.get(key)
        if current is not None and current.error is None:
            return current
        return await self._load(key, operation="initialize")

    async def refresh(self, key: str) -> AccountEntry:
        """Wholesale refetch, replacing the cached snapshot."""
        return await self._load(key, operation="refresh")

    async def initialize_all(self, keys: List[str]) -> List[AccountEntry]:
        return list(await asyncio.gather(*(self.initialize(key) for key in keys)))

    async def _load(self, key: str, operation: str) -> AccountEntry:
        logger = bind_account_context(self.logger, key)
        previous = self._entries.get(key)
        entry = AccountEntry(snapshot=previous.snapshot if previous else None, is_loading=True)
        self._entries[key] = entry

        try:
            history, state = await asyncio.gather(
                self.correlator.request_info("portfolio", user=key),
                self.correlator.request_info("clearinghouseState", user=key),
            )
        except Exception as e:
            entry.is_loading = False
            entry.error = f"{operation.capitalize()} failed: {e}"
            self.error_logger.error("Account fetch failed", account=key,
                                    **create_error_context(e, f"account_{operation}"))
            return entry

        snapshot = process_snapshot(history, state, self.market_store.mids)
        entry.is_loading = False
        if snapshot is None:
            entry.error = f"{operation.capitalize()} failed: no clearinghouse state"
            logger.warning("No clearinghouse state returned")
            return entry

        entry.snapshot = snapshot
        entry.error = None
        entry.last_refreshed = datetime.now(timezone.utc)
        logger.info("Account snapshot loaded", operation=operation,
                    account_value=snapshot.account_value, positions=len(snapshot.positions))
        return entry

    def sync(self, key: str, mids: Mapping[str, str]) -> Optional[AccountSnapshot]:
        """Re-derive the cached snapshot against ``mids``.

        Skipped while loading or before the first snapshot.
        """
        entry = self._entries.get(key)
        if entry is None or entry.is_loading or entry.snapshot is None:
            return None
        try:
            snapshot = compute_live_pnl(entry.snapshot, mids)
        except Exception as e:
            entry.error = f"Sync failed: {e}"
            self.error_logger.error("Account sync failed", account=key,
                                    **create_error_context(e, "account_sync"))
            return None

        entry.snapshot = snapshot
        entry.error = None
        entry.last_synced = datetime.now(timezone.utc)
        return snapshot

    def sync_all(self, mids: Mapping[str, str]) -> int:
        synced = 0
        for key in list(self._entries):
            if self.sync(key, mids) is not None:
                synced += 1
        return synced
