"""Ledger position reconstruction."""

from .models import LedgerPosition, PositionSide, PositionStatus
from .reconstructor import build_positions_from_ledger, filter_closed_positions, filter_open_positions
from .service import InMemoryLedgerRowSource, LedgerRowSource, LedgerService

__all__ = [
    "LedgerPosition",
    "PositionSide",
    "PositionStatus",
    "build_positions_from_ledger",
    "filter_open_positions",
    "filter_closed_positions",
    "LedgerRowSource",
    "InMemoryLedgerRowSource",
    "LedgerService",
]
