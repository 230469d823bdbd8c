import asyncio

import pytest

from core.config.settings import LatencySettings
from services.connection.liveness import LivenessMonitor, classify_latency
from services.connection.models import LatencyBucket


@pytest.mark.parametrize("latency,bucket", [
    (None, LatencyBucket.STRONG),
    (0.0, LatencyBucket.STRONG),
    (999.9, LatencyBucket.STRONG),
    (1000.0, LatencyBucket.MODERATE),
    (2999.0, LatencyBucket.MODERATE),
    (3000.0, LatencyBucket.WEAK),
    (12000.0, LatencyBucket.WEAK),
])
def test_classify_latency_buckets(latency, bucket):
    assert classify_latency(latency) == bucket


def test_classify_latency_custom_thresholds():
    thresholds = LatencySettings(strong_below_ms=100, moderate_below_ms=200)
    assert classify_latency(150, thresholds) == LatencyBucket.MODERATE


@pytest.mark.asyncio
async def test_ping_records_round_trip_latency(test_settings, connection, correlator, dispatcher, connector, exchange):
    exchange.payloads["exchangeStatus"] = {"specialStatuses": None}
    ticks = iter([10.0, 10.25])
    monitor = LivenessMonitor(test_settings, connection, correlator, clock=lambda: next(ticks))
    await connection.connect()

    latency = await monitor.ping_once()

    assert latency == pytest.approx(250.0)
    assert connection.latency_ms == pytest.approx(250.0)
    assert monitor.latency_bucket == LatencyBucket.STRONG
    assert connector.last.frames("post")[0]["request"] == {"type": "info", "payload": {"type": "exchangeStatus"}}
    await connection.close()


@pytest.mark.asyncio
async def test_ping_skipped_while_disconnected(test_settings, connection, correlator):
    monitor = LivenessMonitor(test_settings, connection, correlator)
    assert await monitor.ping_once() is None
    assert connection.latency_ms is None


@pytest.mark.asyncio
async def test_ping_timeout_keeps_previous_latency(test_settings, connection, correlator, dispatcher, exchange):
    test_settings.connection.liveness_timeout_seconds = 0.05
    exchange.silent.add("exchangeStatus")
    monitor = LivenessMonitor(test_settings, connection, correlator)
    await connection.connect()
    connection.record_latency(40.0)

    assert await monitor.ping_once() is None
    assert connection.latency_ms == 40.0
    assert correlator.pending_count == 0
    await connection.close()


@pytest.mark.asyncio
async def test_loop_pings_until_stopped(test_settings, connection, correlator, dispatcher, exchange):
    exchange.payloads["exchangeStatus"] = {}
    monitor = LivenessMonitor(test_settings, connection, correlator)
    await connection.connect()

    await monitor.start()
    await asyncio.sleep(0.15)
    await monitor.stop()

    assert exchange.requested("exchangeStatus") >= 2
    assert connection.latency_ms is not None
    await connection.close()


@pytest.mark.asyncio
async def test_loop_survives_unexpected_ping_error(test_settings, connection, correlator):
    monitor = LivenessMonitor(test_settings, connection, correlator)
    calls = []

    async def flaky_ping():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return 1.0

    monitor.ping_once = flaky_ping
    await monitor.start()
    await asyncio.sleep(0.15)
    await monitor.stop()

    assert len(calls) >= 2
