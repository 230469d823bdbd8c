import pytest

from services.account_state.store import AccountStore
from services.market_data.store import MarketSnapshotStore

ADDRESS = "0x1111111111111111111111111111111111111111"


@pytest.fixture
def market_store(test_settings):
    return MarketSnapshotStore(test_settings)


@pytest.fixture
def account_store(test_settings, correlator, market_store, dispatcher):
    return AccountStore(test_settings, correlator, market_store)


@pytest.fixture
def funded_exchange(exchange, portfolio_history, clearinghouse_state):
    exchange.payloads["portfolio"] = portfolio_history
    exchange.payloads["clearinghouseState"] = clearinghouse_state
    return exchange


@pytest.mark.asyncio
async def test_initialize_fetches_once(account_store, connection, funded_exchange):
    await connection.connect()

    entry = await account_store.initialize(ADDRESS)
    again = await account_store.initialize(ADDRESS)

    assert entry.error is None
    assert not entry.is_loading
    assert entry.snapshot.account_value == pytest.approx(10500.0)
    assert again is entry
    assert funded_exchange.requested("clearinghouseState") == 1
    assert funded_exchange.requests[0]["payload"]["user"] == ADDRESS
    await connection.close()


@pytest.mark.asyncio
async def test_refresh_refetches(account_store, connection, funded_exchange, clearinghouse_state):
    await connection.connect()
    await account_store.initialize(ADDRESS)

    clearinghouse_state["marginSummary"]["accountValue"] = "11000.0"
    entry = await account_store.refresh(ADDRESS)

    assert entry.snapshot.account_value == pytest.approx(11000.0)
    assert funded_exchange.requested("portfolio") == 2
    assert entry.last_refreshed is not None
    await connection.close()


@pytest.mark.asyncio
async def test_fetch_error_recorded_then_retried(account_store, connection, funded_exchange):
    funded_exchange.errors["clearinghouseState"] = "User not found"
    await connection.connect()

    entry = await account_store.initialize(ADDRESS)
    assert entry.error.startswith("Initialize failed:")
    assert "User not found" in entry.error
    assert entry.snapshot is None
    assert not entry.is_loading

    del funded_exchange.errors["clearinghouseState"]
    entry = await account_store.initialize(ADDRESS)
    assert entry.error is None
    assert entry.snapshot is not None
    await connection.close()


@pytest.mark.asyncio
async def test_missing_state_recorded_as_error(account_store, connection, exchange):
    exchange.payloads["portfolio"] = []
    exchange.payloads["clearinghouseState"] = None
    await connection.connect()

    entry = await account_store.refresh(ADDRESS)

    assert entry.error.startswith("Refresh failed:")
    assert account_store.get_snapshot(ADDRESS) is None
    await connection.close()


@pytest.mark.asyncio
async def test_initialize_all_covers_each_account(account_store, connection, funded_exchange):
    await connection.connect()
    entries = await account_store.initialize_all([ADDRESS, "0xabc"])
    assert len(entries) == 2
    assert set(account_store.accounts) == {ADDRESS, "0xabc"}
    await connection.close()


def test_sync_skipped_without_snapshot(account_store):
    assert account_store.sync(ADDRESS, {"BTC": "1"}) is None
    assert account_store.sync_all({"BTC": "1"}) == 0


@pytest.mark.asyncio
async def test_market_tick_syncs_accounts(account_store, market_store, connection, funded_exchange):
    await connection.connect()
    await account_store.initialize(ADDRESS)

    assert market_store.handle_mids_tick({"BTC": "62000.0"}, timestamp_ms=0)

    entry = account_store.get(ADDRESS)
    assert entry.snapshot.account_value == pytest.approx(10600.0)
    assert entry.last_synced is not None
    await connection.close()
