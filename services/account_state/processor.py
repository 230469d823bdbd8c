"""
Account equity and PnL derivation.

A clearinghouse snapshot reports an account value that already includes the
unrealized PnL of its positions at the marks current when it was taken. To
re-price against live mids without double counting, the derived value is::

    account_value = base_account_value + (total_open_pnl - stale_unrealized_pnl)

where ``stale_unrealized_pnl`` is the sum of the snapshot's own unrealized
PnL figures. Live updates always re-derive from the untouched raw snapshot.
"""

import copy
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from core.utils.parsing import to_float, to_number

from .models import AccountSnapshot, HistoryPoint, LivePosition, TimeframePnl


def normalize_series(series: Any) -> List[HistoryPoint]:
    """Turn a raw ``[[timestamp, value], ...]`` series into points, dropping malformed entries."""
    if not isinstance(series, (list, tuple)):
        return []
    points = []
    for entry in series:
        if not isinstance(entry, (list, tuple)) or len(entry) < 2:
            continue
        timestamp = to_number(entry[0])
        value = to_number(entry[1])
        if timestamp is None or value is None:
            continue
        points.append(HistoryPoint(timestamp=timestamp, value=value))
    return points


def derive_totals(histories: Mapping[str, List[HistoryPoint]]) -> Tuple[Optional[float], Optional[float]]:
    """Total PnL and PnL % from the first series with at least two points.

    Returns ``(None, None)`` when no such series exists; the percentage is
    None when the starting value is zero.
    """
    for series in histories.values():
        if len(series) > 1:
            first, last = series[0].value, series[-1].value
            total = last - first
            pct = total / first * 100.0 if first != 0 else None
            return total, pct
    return None, None


def _iter_history(history_by_timeframe: Any) -> Iterable[Tuple[str, Any]]:
    # Portfolio responses are [[timeframe, {...}], ...]; a plain dict is accepted too
    if isinstance(history_by_timeframe, Mapping):
        yield from history_by_timeframe.items()
        return
    if isinstance(history_by_timeframe, (list, tuple)):
        for item in history_by_timeframe:
            if isinstance(item, (list, tuple)) and len(item) >= 2 and isinstance(item[0], str):
                yield item[0], item[1]


def _raw_history(history_by_timeframe: Any) -> Dict[str, List[HistoryPoint]]:
    raw: Dict[str, List[HistoryPoint]] = {}
    for timeframe, content in _iter_history(history_by_timeframe):
        series = content.get("accountValueHistory") if isinstance(content, Mapping) else content
        raw[timeframe] = normalize_series(series)
    return raw


def _timeframe_pnl(first: float, account_value: float) -> TimeframePnl:
    pnl = account_value - first
    return TimeframePnl(
        first=first,
        last=account_value,
        pnl=pnl,
        pnl_pct=pnl / first * 100.0 if first > 0 else 0.0,
    )


def _resolve_mark_price(raw: Mapping[str, Any], mids: Mapping[str, Any], size: float, entry_price: float) -> float:
    mid = to_number(mids.get(raw.get("coin"))) if raw.get("coin") is not None else None
    if mid is not None:
        return mid
    mark = to_number(raw.get("markPx"))
    if mark is not None:
        return mark
    # Clearinghouse positions report value rather than a mark price
    position_value = to_number(raw.get("positionValue"))
    if position_value is not None and size != 0:
        return abs(position_value / size)
    return entry_price


def _leverage(raw: Any) -> Optional[float]:
    if isinstance(raw, Mapping):
        return to_number(raw.get("value"))
    return to_number(raw)


def _build_position(raw: Mapping[str, Any], mids: Mapping[str, Any]) -> LivePosition:
    size = to_float(raw.get("szi"))
    entry_price = to_float(raw.get("entryPx"))
    mark_price = _resolve_mark_price(raw, mids, size, entry_price)

    if entry_price != 0:
        direction = 1 if size > 0 else -1
        live_pnl_pct = (mark_price - entry_price) / entry_price * 100.0 * direction
    else:
        live_pnl_pct = 0.0

    roe = to_number(raw.get("returnOnEquity"))
    cum_funding = raw.get("cumFunding")

    return LivePosition(
        symbol=str(raw.get("coin") or ""),
        size=size,
        entry_price=entry_price,
        mark_price=mark_price,
        unrealized_pnl=(mark_price - entry_price) * size,
        live_pnl_pct=live_pnl_pct,
        position_value=abs(size) * mark_price,
        leverage=_leverage(raw.get("leverage")),
        liquidation_price=to_number(raw.get("liquidationPx")),
        margin_used=to_number(raw.get("marginUsed")),
        roe=roe * 100.0 if roe is not None else None,
        cum_funding_all_time=to_float(cum_funding.get("allTime")) if isinstance(cum_funding, Mapping) else 0.0,
    )


def _raw_positions(state: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    entries = state.get("assetPositions")
    if not isinstance(entries, list):
        return []
    raw = []
    for entry in entries:
        position = entry.get("position") if isinstance(entry, Mapping) else None
        if isinstance(position, Mapping):
            raw.append(position)
    return raw


def _derive(state: Mapping[str, Any], mids: Mapping[str, Any]) -> Dict[str, Any]:
    """Positions, totals and corrected account value from a raw state."""
    margin_summary = state.get("marginSummary")
    if not isinstance(margin_summary, Mapping):
        margin_summary = {}
    base_account_value = to_float(margin_summary.get("accountValue"))

    raw_positions = _raw_positions(state)
    positions = [_build_position(raw, mids) for raw in raw_positions]
    stale_unrealized = sum(to_float(raw.get("unrealizedPnl")) for raw in raw_positions)
    total_open_pnl = sum(p.unrealized_pnl for p in positions)
    total_ntl_pos = sum(p.position_value for p in positions)

    return {
        "account_value": base_account_value + (total_open_pnl - stale_unrealized),
        "base_account_value": base_account_value,
        "stale_unrealized_pnl": stale_unrealized,
        "total_open_pnl": total_open_pnl,
        "total_ntl_pos": total_ntl_pos,
        "withdrawable": to_number(state.get("withdrawable")),
        "positions": positions,
    }


def process_snapshot(
    history_by_timeframe: Any,
    exchange_state: Optional[Mapping[str, Any]],
    mids: Optional[Mapping[str, Any]] = None,
) -> Optional[AccountSnapshot]:
    """Derive an :class:`AccountSnapshot` from a portfolio history and clearinghouse state.

    Returns None when ``exchange_state`` is missing.
    """
    if not isinstance(exchange_state, Mapping):
        return None

    raw_state = copy.deepcopy(dict(exchange_state))
    derived = _derive(raw_state, mids or {})
    account_value = derived["account_value"]

    raw_history = _raw_history(history_by_timeframe)
    pnl_history = {}
    for timeframe, series in raw_history.items():
        first = min(series, key=lambda p: p.timestamp).value if series else 0.0
        pnl_history[timeframe] = _timeframe_pnl(first, account_value)

    return AccountSnapshot(
        **derived,
        pnl_history=pnl_history,
        raw_history=raw_history,
        raw_state=raw_state,
    )


def compute_live_pnl(previous: AccountSnapshot, new_mids: Mapping[str, Any]) -> AccountSnapshot:
    """Re-price ``previous`` against ``new_mids``.

    Starts from the raw state carried on the snapshot, never from its derived
    fields. Each timeframe keeps its ``first`` anchor.
    """
    derived = _derive(previous.raw_state, new_mids or {})
    account_value = derived["account_value"]
    pnl_history = {
        timeframe: _timeframe_pnl(entry.first, account_value)
        for timeframe, entry in previous.pnl_history.items()
    }
    return AccountSnapshot(
        **derived,
        pnl_history=pnl_history,
        raw_history=previous.raw_history,
        raw_state=previous.raw_state,
    )
