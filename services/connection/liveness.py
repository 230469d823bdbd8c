# Liveness loop: periodic exchangeStatus round trips recorded as latency
import asyncio
import time
from typing import Callable, Optional

from core.config.settings import LatencySettings, Settings
from core.logging import get_error_logger_safe, get_performance_logger_safe
from core.utils.exceptions import EngineConnectionError, RequestFailedError, RequestTimeoutError

from .manager import ConnectionManager
from .models import LatencyBucket

EXCHANGE_STATUS_REQUEST = {"type": "info", "payload": {"type": "exchangeStatus"}}


def classify_latency(latency_ms: Optional[float], thresholds: Optional[LatencySettings] = None) -> LatencyBucket:
    """Bucket a latency measurement; an unknown latency counts as strong."""
    thresholds = thresholds or LatencySettings()
    if latency_ms is None or latency_ms < thresholds.strong_below_ms:
        return LatencyBucket.STRONG
    if latency_ms < thresholds.moderate_below_ms:
        return LatencyBucket.MODERATE
    return LatencyBucket.WEAK


class LivenessMonitor:
    def __init__(
        self,
        settings: Settings,
        connection: ConnectionManager,
        correlator,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.settings = settings
        self.connection = connection
        self.correlator = correlator
        self.interval = settings.connection.liveness_interval_seconds
        self.timeout = settings.connection.liveness_timeout_seconds
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.logger = get_performance_logger_safe("liveness_monitor")
        self.error_logger = get_error_logger_safe("liveness_errors")

    @property
    def latency_bucket(self) -> LatencyBucket:
        return classify_latency(self.connection.latency_ms, self.settings.latency)

    async def ping_once(self) -> Optional[float]:
        """One exchangeStatus round trip. Returns the latency in ms, or None if it failed."""
        if not self.connection.is_connected:
            return None

        start = self._clock()
        try:
            await self.correlator.send_request(EXCHANGE_STATUS_REQUEST, timeout=self.timeout)
        except RequestFailedError as e:
            # An error answer is still a completed round trip
            self.logger.debug("Liveness ping answered with error", error=str(e))
        except (RequestTimeoutError, EngineConnectionError) as e:
            self.logger.warning("Liveness ping failed", error=str(e))
            return None

        latency_ms = (self._clock() - start) * 1000.0
        self.connection.record_latency(latency_ms)
        self.logger.debug("Liveness ping", latency_ms=round(latency_ms, 2), bucket=self.latency_bucket.value)
        return latency_ms

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run(), name="liveness-monitor")

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        while self._running:
            try:
                await self.ping_once()
            except Exception as e:
                self.error_logger.error("Liveness ping crashed", error=str(e), exc_info=True)
            await asyncio.sleep(self.interval)
