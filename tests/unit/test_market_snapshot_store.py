import pytest

from services.market_data.models import AssetSnapshot
from services.market_data.store import MarketSnapshotStore
from services.market_data.top_k import build_asset_snapshots


@pytest.fixture
def store(test_settings):
    store = MarketSnapshotStore(test_settings, clock=lambda: 0.0)
    store.set_tickers([
        AssetSnapshot(symbol="BTC", asset_id=0, price=60000.0, mid_price=60000.0, prev_day_price=50000.0),
        AssetSnapshot(symbol="ETH", asset_id=1, price=3000.0, mid_price=3000.0),
    ])
    return store


def test_update_overwrites_only_parseable_prices(store):
    store.update_tickers({"BTC": "66000.0", "ETH": "garbage"}, 123.0)

    btc, eth = store.tickers
    assert btc.price == btc.mid_price == 66000.0
    assert btc.percent_change == pytest.approx(32.0)
    assert eth.price == 3000.0
    assert btc.last_updated == eth.last_updated == 123.0
    assert store.mids == {"BTC": "66000.0", "ETH": "garbage"}


def test_ticks_inside_interval_are_dropped(store):
    assert store.handle_mids_tick({"BTC": "1"}, timestamp_ms=0)
    assert not store.handle_mids_tick({"BTC": "2"}, timestamp_ms=500)
    assert not store.handle_mids_tick({"BTC": "3"}, timestamp_ms=999)
    assert store.handle_mids_tick({"BTC": "4"}, timestamp_ms=1000)

    assert store.get_ticker("btc").price == 4.0
    assert store.dropped_ticks == 2
    assert store.stats.applied_ticks == 2


def test_clock_used_when_no_timestamp(test_settings):
    now = iter([5000.0, 5100.0])
    store = MarketSnapshotStore(test_settings, clock=lambda: next(now))
    assert store.handle_mids_tick({})
    assert not store.handle_mids_tick({})


def test_listeners_run_only_for_applied_ticks(store):
    seen = []
    remove = store.add_listener(seen.append)

    store.handle_mids_tick({"BTC": "1"}, timestamp_ms=0)
    store.handle_mids_tick({"BTC": "2"}, timestamp_ms=10)
    remove()
    store.handle_mids_tick({"BTC": "3"}, timestamp_ms=5000)

    assert seen == [{"BTC": "1"}]


def test_failing_listener_does_not_block_tick(store):
    def broken(mids):
        raise RuntimeError("listener bug")

    seen = []
    store.add_listener(broken)
    store.add_listener(seen.append)

    assert store.handle_mids_tick({"ETH": "3100"}, timestamp_ms=0)
    assert seen == [{"ETH": "3100"}]
    assert store.get_ticker("ETH").price == 3100.0


def test_mixed_case_coin_follows_mids_stream(test_settings):
    store = MarketSnapshotStore(test_settings, clock=lambda: 0.0)
    store.set_tickers(build_asset_snapshots([{"name": "kPEPE"}], [{"midPx": "0.01"}]))

    store.update_tickers({"kPEPE": "0.02"}, 1000.0)

    ticker = store.get_ticker("kPEPE")
    assert ticker.symbol == "kPEPE"
    assert ticker.price == ticker.mid_price == 0.02
    assert ticker.last_updated == 1000.0
    assert store.get_ticker("KPEPE") is ticker
