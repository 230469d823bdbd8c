"""
Pytest configuration and shared fixtures for state engine tests.
"""
import pytest

from core.config.settings import (
    ConnectionSettings,
    LoggingSettings,
    MarketDataSettings,
    Settings,
)
from services.connection.manager import ConnectionManager
from services.connection.dispatcher import InboundDispatcher
from services.requests.correlator import RequestCorrelator
from services.subscriptions.multiplexer import SubscriptionMultiplexer
from tests.mocks.fake_socket import FakeConnector, FakeExchange


@pytest.fixture
def test_settings():
    """Test settings configuration."""
    return Settings(
        environment="testing",
        connection=ConnectionSettings(
            ws_url="wss://example.invalid/ws",
            request_timeout_seconds=1.0,
            liveness_interval_seconds=0.05,
            liveness_timeout_seconds=0.5,
        ),
        market_data=MarketDataSettings(top_k=3, min_update_interval_ms=1000),
        logging=LoggingSettings(console_enabled=False, file_enabled=False),
    )


@pytest.fixture
def exchange():
    """Canned exchange answering info requests."""
    return FakeExchange()


@pytest.fixture
def connector(exchange):
    return FakeConnector(responder=exchange)


@pytest.fixture
def connection(test_settings, connector):
    return ConnectionManager(test_settings, connect_factory=connector)


@pytest.fixture
def correlator(test_settings, connection):
    return RequestCorrelator(test_settings, connection)


@pytest.fixture
def multiplexer(test_settings, connection):
    return SubscriptionMultiplexer(test_settings, connection)


@pytest.fixture
def dispatcher(connection, correlator, multiplexer):
    return InboundDispatcher(connection, correlator, multiplexer)


@pytest.fixture
def sample_universe():
    """metaAndAssetCtxs-shaped universe and contexts"""
    universe = [
        {"name": "BTC", "szDecimals": 5, "maxLeverage": 50},
        {"name": "ETH", "szDecimals": 4, "maxLeverage": 50},
        {"name": "SOL", "szDecimals": 2, "maxLeverage": 20},
        {"name": "DOGE", "szDecimals": 0, "maxLeverage": 10},
        {"name": "XRP", "szDecimals": 0, "maxLeverage": 20},
    ]
    contexts = [
        {"dayNtlVlm": "900000000.0", "funding": "0.0000125", "markPx": "60000.0", "midPx": "60001.0",
         "openInterest": "12000.5", "oraclePx": "59990.0", "premium": "0.0001", "prevDayPx": "58000.0",
         "impactPxs": ["60000.0", "60002.0"]},
        {"dayNtlVlm": "500000000.0", "funding": "0.00001", "markPx": "3000.0", "midPx": "3000.5",
         "openInterest": "90000.0", "oraclePx": "2999.0", "premium": "0.0", "prevDayPx": "3100.0",
         "impactPxs": ["2999.9", "3000.9"]},
        {"dayNtlVlm": "200000000.0", "funding": "-0.00002", "markPx": "150.0", "midPx": None,
         "openInterest": "400000.0", "oraclePx": "149.8", "premium": "0.0", "prevDayPx": "120.0",
         "impactPxs": None},
        {"dayNtlVlm": "not-a-number", "funding": "0.0", "markPx": "0.1", "midPx": "0.1",
         "openInterest": "1.0", "oraclePx": "0.1", "premium": "0.0", "prevDayPx": "0.1"},
        {"dayNtlVlm": "50000000.0", "funding": "0.0", "markPx": "0.5", "midPx": "0.5",
         "openInterest": "10.0", "oraclePx": "0.5", "premium": "0.0", "prevDayPx": "0.25"},
    ]
    return universe, contexts


@pytest.fixture
def clearinghouse_state():
    """clearinghouseState with one long and one short position"""
    return {
        "marginSummary": {"accountValue": "10500.0", "totalNtlPos": "9000.0"},
        "withdrawable": "4000.0",
        "assetPositions": [
            {"type": "oneWay", "position": {
                "coin": "BTC", "szi": "0.1", "entryPx": "60000.0", "positionValue": "6100.0",
                "unrealizedPnl": "100.0", "returnOnEquity": "0.05", "liquidationPx": "45000.0",
                "marginUsed": "610.0", "leverage": {"type": "cross", "value": 10},
                "cumFunding": {"allTime": "-3.5", "sinceOpen": "-1.0"},
            }},
            {"type": "oneWay", "position": {
                "coin": "ETH", "szi": "-1.0", "entryPx": "3000.0", "positionValue": "2900.0",
                "unrealizedPnl": "100.0", "returnOnEquity": "0.1", "liquidationPx": "3600.0",
                "marginUsed": "290.0", "leverage": {"type": "isolated", "value": 10},
            }},
        ],
    }


@pytest.fixture
def portfolio_history():
    """portfolio response: [[timeframe, {accountValueHistory: [[ts, value], ...]}], ...]"""
    return [
        ["day", {"accountValueHistory": [[1700000000000, "10000.0"], [1700003600000, "10200.0"]]}],
        ["week", {"accountValueHistory": [[1699400000000, "0.0"], [1700000000000, "10000.0"]]}],
        ["allTime", {"accountValueHistory": []}],
    ]
