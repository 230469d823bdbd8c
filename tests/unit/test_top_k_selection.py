import random
from types import SimpleNamespace

import pytest

from services.market_data.top_k import (
    build_asset_snapshots,
    compute_percent_change,
    get_top_k_assets,
    select_top_assets,
)


def _assets(**metrics):
    return [{"symbol": name, "volume": value} for name, value in metrics.items()]


def _symbols(assets):
    return [a["symbol"] if isinstance(a, dict) else a.symbol for a in assets]


def test_selects_largest_k_in_descending_order():
    assets = _assets(DOGE=10, BTC=100, SOL=50, ETH=80)
    assert _symbols(get_top_k_assets(assets, "volume", 3)) == ["BTC", "ETH", "SOL"]


def test_k_larger_than_universe_returns_everything_sorted():
    assets = _assets(A=1, B=3, C=2)
    assert _symbols(get_top_k_assets(assets, "volume", 10)) == ["B", "C", "A"]


@pytest.mark.parametrize("k", [0, -1])
def test_non_positive_k_returns_empty(k):
    assert get_top_k_assets(_assets(A=1), "volume", k) == []


def test_invalid_metrics_are_skipped():
    assets = _assets(NAN=float("nan"), NONE=None, TEXT="abc", INF=float("inf"), FLAG=True, OK="7.5")
    assets.append({"symbol": "MISSING"})
    assert _symbols(get_top_k_assets(assets, "volume", 5)) == ["OK"]


def test_ties_keep_first_seen_assets():
    assert _symbols(get_top_k_assets(_assets(a=5, b=5, c=5), "volume", 2)) == ["a", "b"]
    assert _symbols(get_top_k_assets(_assets(a=5, b=5, c=9), "volume", 2)) == ["c", "a"]


def test_supports_attribute_objects():
    assets = [SimpleNamespace(symbol="X", volume=1.0), SimpleNamespace(symbol="Y", volume=2.0)]
    assert _symbols(get_top_k_assets(assets, "volume", 1)) == ["Y"]


def test_matches_full_sort_on_random_universe():
    rng = random.Random(42)
    assets = [{"symbol": f"A{i}", "volume": rng.uniform(0, 1000)} for i in range(500)]
    expected = sorted(assets, key=lambda a: -a["volume"])[:25]
    assert get_top_k_assets(assets, "volume", 25) == expected


def test_output_is_non_increasing():
    rng = random.Random(7)
    assets = [{"symbol": str(i), "volume": rng.randint(0, 20)} for i in range(200)]
    values = [a["volume"] for a in get_top_k_assets(assets, "volume", 50)]
    assert values == sorted(values, reverse=True)


def test_compute_percent_change():
    assert compute_percent_change(110.0, 100.0) == pytest.approx(10.0)
    assert compute_percent_change(None, 100.0) is None
    assert compute_percent_change(110.0, 0.0) is None


def test_build_asset_snapshots_from_universe(sample_universe):
    universe, contexts = sample_universe
    snapshots = build_asset_snapshots(universe, contexts)

    assert [s.symbol for s in snapshots] == ["BTC", "ETH", "SOL", "DOGE", "XRP"]
    btc = snapshots[0]
    assert btc.asset_id == 0
    assert btc.price == 60001.0
    assert btc.mark_price == 60000.0
    assert btc.impact_prices == [60000.0, 60002.0]
    assert btc.size_decimals == 5
    assert btc.max_leverage == 50
    assert snapshots[3].day_notional_volume is None


def test_delisted_and_malformed_entries_are_skipped():
    universe = [{"name": "OLD", "isDelisted": True}, "junk", {"name": "new"}]
    contexts = [{"dayNtlVlm": "1"}, {"dayNtlVlm": "2"}, {"dayNtlVlm": "3"}]
    snapshots = build_asset_snapshots(universe, contexts)
    assert [(s.symbol, s.asset_id) for s in snapshots] == [("new", 2)]


def test_select_top_assets_by_volume(sample_universe):
    universe, contexts = sample_universe
    top = select_top_assets(universe, contexts, "day_notional_volume", 3)

    assert [t.symbol for t in top] == ["BTC", "ETH", "SOL"]
    # SOL has no mid yet, falls back to mark
    assert top[2].price == 150.0
    assert top[2].percent_change == pytest.approx(25.0)


def test_select_top_assets_by_percent_change(sample_universe):
    universe, contexts = sample_universe
    top = select_top_assets(universe, contexts, "percent_change", 3)
    assert [t.symbol for t in top] == ["XRP", "SOL", "BTC"]
