from typing import Any, List, Mapping, Protocol, runtime_checkable

from core.config.settings import Settings
from core.logging import get_ledger_logger_safe

from .models import LedgerPosition
from .reconstructor import (
    build_positions_from_ledger,
    filter_closed_positions,
    filter_open_positions,
)


@runtime_checkable
class LedgerRowSource(Protocol):
    """Persistence collaborator returning raw ledger rows for an agent"""

    async def fetch_rows(self, agent_id: str) -> List[Mapping[str, Any]]:
        ...


class InMemoryLedgerRowSource:
    """Row source over rows already loaded, e.g. from an export file."""

    def __init__(self, rows: List[Mapping[str, Any]]):
        self.rows = list(rows)

    async def fetch_rows(self, agent_id: str) -> List[Mapping[str, Any]]:
        if not agent_id:
            return list(self.rows)
        return [row for row in self.rows if str(row.get("agent_id")) == agent_id]


class LedgerService:
    """Reconstructs positions on every query; nothing is cached."""

    def __init__(self, settings: Settings, source: LedgerRowSource):
        self.settings = settings
        self.source = source
        self.logger = get_ledger_logger_safe("ledger_service")

    async def get_positions(self, agent_id: str, status: str = "all") -> List[LedgerPosition]:
        rows = await self.source.fetch_rows(agent_id)
        positions = build_positions_from_ledger(rows)
        self.logger.info("Ledger reconstructed", agent_id=agent_id, rows=len(rows), positions=len(positions))

        status = status.lower()
        if status == "open":
            return filter_open_positions(positions)
        if status == "closed":
            return filter_closed_positions(positions)
        return positions
