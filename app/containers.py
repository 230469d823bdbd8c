# Engine DI container - all process-wide state lives on these providers
from dependency_injector import containers, providers
import websockets

from core.config.settings import Settings
from services.connection.manager import ConnectionManager
from services.connection.dispatcher import InboundDispatcher
from services.connection.liveness import LivenessMonitor
from services.requests.correlator import RequestCorrelator
from services.subscriptions.multiplexer import SubscriptionMultiplexer
from services.market_data.store import MarketSnapshotStore
from services.market_data.service import MarketDataService
from services.account_state.store import AccountStore
from services.ledger.service import InMemoryLedgerRowSource, LedgerService


class AppContainer(containers.DeclarativeContainer):
    """Application dependency injection container"""

    # Configuration
    settings = providers.Singleton(Settings)

    # Socket factory; tests override this with a fake
    connect_factory = providers.Object(websockets.connect)

    # --- Transport ---
    connection_manager = providers.Singleton(
        ConnectionManager,
        settings=settings,
        connect_factory=connect_factory,
    )

    request_correlator = providers.Singleton(
        RequestCorrelator,
        settings=settings,
        connection=connection_manager,
    )

    subscription_multiplexer = providers.Singleton(
        SubscriptionMultiplexer,
        settings=settings,
        connection=connection_manager,
    )

    # Registers itself as the connection's message listener when created
    inbound_dispatcher = providers.Singleton(
        InboundDispatcher,
        connection=connection_manager,
        correlator=request_correlator,
        multiplexer=subscription_multiplexer,
    )

    liveness_monitor = providers.Singleton(
        LivenessMonitor,
        settings=settings,
        connection=connection_manager,
        correlator=request_correlator,
    )

    # --- Market data ---
    market_snapshot_store = providers.Singleton(
        MarketSnapshotStore,
        settings=settings,
    )

    market_data_service = providers.Singleton(
        MarketDataService,
        settings=settings,
        correlator=request_correlator,
        multiplexer=subscription_multiplexer,
        store=market_snapshot_store,
    )

    # --- Accounts ---
    account_store = providers.Singleton(
        AccountStore,
        settings=settings,
        correlator=request_correlator,
        market_store=market_snapshot_store,
    )

    # --- Ledger ---
    ledger_row_source = providers.Singleton(
        InMemoryLedgerRowSource,
        rows=providers.List(),
    )

    ledger_service = providers.Singleton(
        LedgerService,
        settings=settings,
        source=ledger_row_source,
    )
