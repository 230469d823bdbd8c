"""
Bounded top-K selection over the exchange asset universe.

A min-heap of at most K entries is kept while scanning the assets once, so
selection is O(N log K) regardless of universe size.
"""

import heapq
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from core.utils.parsing import to_int, to_number

from .models import AssetSnapshot


def _metric_value(asset: Any, metric_key: str) -> Optional[float]:
    if isinstance(asset, Mapping):
        raw = asset.get(metric_key)
    else:
        raw = getattr(asset, metric_key, None)
    return to_number(raw)


def get_top_k_assets(assets: Iterable[Any], metric_key: str, k: int) -> List[Any]:
    """Return the ``k`` assets with the largest ``metric_key``, sorted descending.

    Assets may be mappings or objects. Assets whose metric is missing or not a
    finite number are skipped. On ties the first-seen asset is kept, and tied
    assets are ordered by input position.
    """
    if k <= 0:
        return []

    # Entries are (metric, -position, asset): the heap minimum is the smallest
    # metric, and among equal metrics the most recently seen asset.
    heap: List[Tuple[float, int, Any]] = []
    for position, asset in enumerate(assets):
        metric = _metric_value(asset, metric_key)
        if metric is None:
            continue
        entry = (metric, -position, asset)
        if len(heap) < k:
            heapq.heappush(heap, entry)
        elif metric > heap[0][0]:
            heapq.heapreplace(heap, entry)

    heap.sort(key=lambda e: (-e[0], -e[1]))
    return [asset for _, _, asset in heap]


def compute_percent_change(price: Optional[float], prev_day_price: Optional[float]) -> Optional[float]:
    if price is None or prev_day_price is None or prev_day_price <= 0:
        return None
    return (price - prev_day_price) / prev_day_price * 100.0


def build_asset_snapshot(asset_id: int, meta: Mapping[str, Any], ctx: Mapping[str, Any]) -> AssetSnapshot:
    mid = to_number(ctx.get("midPx"))
    mark = to_number(ctx.get("markPx"))
    prev = to_number(ctx.get("prevDayPx"))
    impact = ctx.get("impactPxs")
    price = mid if mid is not None else mark

    return AssetSnapshot(
        symbol=str(meta.get("name") or ""),
        asset_id=asset_id,
        mid_price=mid,
        price=price,
        mark_price=mark,
        oracle_price=to_number(ctx.get("oraclePx")),
        prev_day_price=prev,
        day_notional_volume=to_number(ctx.get("dayNtlVlm")),
        funding_rate=to_number(ctx.get("funding")),
        open_interest=to_number(ctx.get("openInterest")),
        premium=to_number(ctx.get("premium")),
        impact_prices=[to_number(p) for p in impact] if isinstance(impact, (list, tuple)) else None,
        size_decimals=to_int(meta.get("szDecimals")) if meta.get("szDecimals") is not None else None,
        max_leverage=to_int(meta.get("maxLeverage")) if meta.get("maxLeverage") is not None else None,
        percent_change=compute_percent_change(price, prev),
    )


def build_asset_snapshots(
    universe: Sequence[Mapping[str, Any]],
    asset_contexts: Sequence[Mapping[str, Any]],
) -> List[AssetSnapshot]:
    """Zip the universe and context arrays; asset_id is the array index."""
    snapshots = []
    for asset_id, (meta, ctx) in enumerate(zip(universe, asset_contexts)):
        if not isinstance(meta, Mapping) or not isinstance(ctx, Mapping):
            continue
        if meta.get("isDelisted"):
            continue
        snapshots.append(build_asset_snapshot(asset_id, meta, ctx))
    return snapshots


def select_top_assets(
    universe: Sequence[Mapping[str, Any]],
    asset_contexts: Sequence[Mapping[str, Any]],
    metric_key: str,
    k: int,
) -> List[AssetSnapshot]:
    return get_top_k_assets(build_asset_snapshots(universe, asset_contexts), metric_key, k)
