"""
Position reconstruction from an append-only trade ledger.

Rows are grouped by the ``position_id`` in their metadata. A group becomes a
position only if it has an OPEN row; a CLOSE row marks it closed and supplies
the exit fields.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

from core.utils.parsing import parse_json_object, parse_timestamp_ms, to_number

from .models import LedgerPosition, PositionSide, PositionStatus


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _classify(action: str) -> Optional[str]:
    if action.startswith("OPEN"):
        return "open"
    if action.startswith("CLOSE"):
        return "close"
    return None


def _side(open_meta: Mapping[str, Any]) -> PositionSide:
    declared = str(open_meta.get("position_side") or "").upper()
    if declared in (PositionSide.LONG.value, PositionSide.SHORT.value):
        return PositionSide(declared)
    action = str(open_meta.get("action") or "").upper()
    return PositionSide.SHORT if "SHORT" in action else PositionSide.LONG


def _build_position(position_id: str, open_row: Mapping[str, Any], open_meta: Mapping[str, Any],
                    close: Optional[tuple]) -> LedgerPosition:
    leverage = to_number(open_meta.get("leverage"), 1.0)
    collateral = to_number(_first_present(open_meta.get("collateral"), open_meta.get("size")), 0.0)
    entry_price = to_number(_first_present(open_meta.get("entry_price"), open_row.get("price")), 0.0)
    quantity = to_number(_first_present(open_meta.get("position_quantity"), open_row.get("quantity")), 0.0)
    if not quantity:
        quantity = collateral * leverage / entry_price if entry_price else 0.0

    position = {
        "id": position_id,
        "agent_id": _optional_str(open_row.get("agent_id")),
        "asset": _optional_str(open_row.get("symbol")),
        "side": _side(open_meta),
        "status": PositionStatus.CLOSED if close else PositionStatus.OPEN,
        "size": collateral,
        "collateral": collateral,
        "quantity": quantity,
        "entry_price": entry_price,
        "entry_timestamp": str(_first_present(open_meta.get("entry_timestamp"), open_row.get("executed_at")) or ""),
        "leverage": leverage,
        "account_id": _optional_str(open_row.get("account_id")),
        "user_id": _optional_str(open_row.get("user_id")),
        "type": _optional_str(open_row.get("type")),
    }

    if close:
        close_row, close_meta = close
        position["exit_price"] = to_number(_first_present(close_meta.get("exit_price"), close_row.get("price")))
        position["exit_timestamp"] = _optional_str(
            _first_present(close_meta.get("exit_timestamp"), close_row.get("executed_at"))
        )
        position["realized_pnl"] = to_number(
            _first_present(close_row.get("realized_pnl"), close_meta.get("realized_pnl"))
        )

    return LedgerPosition(**position)


def _sort_key(position: LedgerPosition):
    ts = parse_timestamp_ms(position.entry_timestamp)
    # Parseable timestamps first, newest first; unparseable ones last
    return (0, -ts) if ts is not None else (1, 0.0)


def build_positions_from_ledger(rows: Optional[Iterable[Mapping[str, Any]]]) -> List[LedgerPosition]:
    """Rebuild positions from ledger rows, newest entry first.

    Rows without a ``position_id`` or with an unrecognised action are ignored;
    for each position the last OPEN and last CLOSE row win. Groups with no
    OPEN row produce nothing.
    """
    grouped: Dict[str, Dict[str, tuple]] = {}
    for row in rows or []:
        if not isinstance(row, Mapping):
            continue
        meta = parse_json_object(row.get("meta"))
        pid = meta.get("position_id")
        position_id = "" if pid is None else str(pid)
        if not position_id:
            continue
        kind = _classify(str(meta.get("action") or "").upper())
        group = grouped.setdefault(position_id, {})
        if kind is not None:
            group[kind] = (row, meta)

    positions = []
    for position_id, group in grouped.items():
        opened = group.get("open")
        if opened is None:
            continue
        open_row, open_meta = opened
        positions.append(_build_position(position_id, open_row, open_meta, group.get("close")))

    positions.sort(key=_sort_key)
    return positions


def filter_open_positions(positions: Iterable[LedgerPosition]) -> List[LedgerPosition]:
    return [p for p in positions if p.status == PositionStatus.OPEN]


def filter_closed_positions(positions: Iterable[LedgerPosition]) -> List[LedgerPosition]:
    return [p for p in positions if p.status == PositionStatus.CLOSED]
