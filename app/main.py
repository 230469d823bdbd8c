# app/main.py

import asyncio
import signal
import sys
from typing import Optional

from core.logging import configure_logging, get_logger
from app.containers import AppContainer


class EngineOrchestrator:
    """Starts the state engine components in dependency order and stops them in reverse."""

    def __init__(self, container: Optional[AppContainer] = None):
        self.container = container or AppContainer()
        self._shutdown_event = asyncio.Event()

        self.settings = self.container.settings()
        configure_logging(self.settings)
        # Route main application logs to the application channel for structured routing
        self.logger = get_logger("agent_state_engine.main", component="application")

        self.connection = self.container.connection_manager()
        self.correlator = self.container.request_correlator()
        self.multiplexer = self.container.subscription_multiplexer()
        # Must exist before the first frame arrives
        self.dispatcher = self.container.inbound_dispatcher()
        self.market_store = self.container.market_snapshot_store()
        self.market_data = self.container.market_data_service()
        self.account_store = self.container.account_store()
        self.liveness = self.container.liveness_monitor()

        self.logger.info(f"🧭 {self.settings.app_name} v{self.settings.version} initializing",
                         ws_url=self.settings.connection.ws_url,
                         environment=self.settings.environment.value)

    async def startup(self) -> None:
        """Connect, rank markets, stream mids, load watched accounts, start liveness."""
        self.logger.info("🚀 Starting state engine...")

        await self.connection.connect()

        tickers = await self.market_data.load()
        self.logger.info("✅ Market snapshot ready", tickers=len(tickers))

        if self.market_data.start_streaming():
            self.logger.info("✅ allMids stream subscribed")

        watched = self.settings.accounts.watch
        if watched:
            entries = await self.account_store.initialize_all(watched)
            failed = [key for key, entry in zip(watched, entries) if entry.error]
            if failed:
                self.logger.warning("⚠️ Some accounts failed to initialize", accounts=failed)
            self.logger.info("✅ Watched accounts initialized", count=len(watched) - len(failed))

        await self.liveness.start()
        self.logger.info("✅ Liveness monitor started")

    async def shutdown(self) -> None:
        """Gracefully shutdown the engine."""
        self.logger.info("🛑 Shutting down state engine...")
        try:
            await self.liveness.stop()
            self.market_data.stop()
            await self.multiplexer.flush()
        except Exception as e:
            self.logger.error(f"Error while stopping engine components: {e}")
        finally:
            await self.connection.close()
            self.logger.info("✅ State engine shutdown complete.")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        try:
            self.logger.info(f"Received shutdown signal: {signal.strsignal(signum)}")
        except Exception as e:
            # Fallback to stderr if logging fails during shutdown
            print(f"Error in signal handler: {e}", file=sys.stderr)
        self._shutdown_event.set()

    def get_status(self) -> dict:
        return {
            "connection": self.connection.get_status(),
            "latency_bucket": self.liveness.latency_bucket.value,
            "pending_requests": self.correlator.pending_count,
            "subscriptions": self.multiplexer.active_keys,
            "tickers": len(self.market_store.tickers),
            "accounts": {
                key: {"loading": entry.is_loading, "error": entry.error}
                for key, entry in self.account_store.accounts.items()
            },
        }

    async def run(self) -> None:
        """Run the engine until shutdown."""
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        try:
            await self.startup()
            self.logger.info("Engine is now running. Press Ctrl+C to exit.")
            await self._shutdown_event.wait()
        finally:
            await self.shutdown()


async def main():
    """Application entry point"""
    app = EngineOrchestrator()
    await app.run()


if __name__ == "__main__":
    asyncio.run(main())
