from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from limit_engine.core.config import Settings
from limit_engine.core.message_broker import MessageBroker
from limit_engine.services.chain import ChainClient
from limit_engine.services.executor import OrderExecutor
from limit_engine.services.monitor import OrderMonitor
from limit_engine.services.notification_service import NotificationService
from limit_engine.services.order_store import OrderStore
from limit_engine.services.orders import OrderService
from limit_engine.services.price_oracle import PriceOracleClient
from limit_engine.services.swap_planner import SwapPlanClient
from limit_engine.services.vault import SecretVault
from limit_engine.services.wallets import WalletService


@dataclass
class Container:
    """Explicitly wired services; built once per process."""

    vault: SecretVault
    chain: ChainClient
    oracle: PriceOracleClient
    planner: SwapPlanClient
    broker: MessageBroker
    store: OrderStore
    notifier: NotificationService
    wallets: WalletService
    orders: OrderService
    executor: OrderExecutor
    monitor: OrderMonitor

    def close(self) -> None:
        self.monitor.stop(timeout=30)
        self.oracle.session.close()
        self.planner.session.close()
        self.broker.close()


def build_container(settings: Settings, session_factory: sessionmaker[Session]) -> Container:
    vault = SecretVault(settings.encryption_key, settings.encryption_salt)
    chain = ChainClient(
        settings.chain_rpc_url,
        vault,
        chain_id=settings.chain_id,
        confirmation_timeout=settings.confirmation_timeout_seconds,
        poll_latency=settings.confirmation_poll_seconds,
        request_timeout=settings.http_timeout_seconds,
    )
    oracle = PriceOracleClient(settings.relay_api_url, settings.chain_id, timeout=settings.http_timeout_seconds)
    planner = SwapPlanClient(settings.relay_api_url, settings.chain_id, timeout=settings.http_timeout_seconds)
    broker = MessageBroker(settings.redis_host, settings.redis_port)

    store = OrderStore(session_factory, lease_seconds=settings.execution_lease_seconds)
    notifier = NotificationService(session_factory, broker, explorer_tx_url=settings.explorer_tx_url)
    wallets = WalletService(session_factory, vault, chain)
    orders = OrderService(store, wallets, notifier)
    executor = OrderExecutor(store, planner, chain, notifier)
    monitor = OrderMonitor(
        store,
        oracle,
        executor,
        notifier,
        interval=settings.monitor_interval_seconds,
        max_workers=settings.monitor_max_workers,
    )

    return Container(
        vault=vault,
        chain=chain,
        oracle=oracle,
        planner=planner,
        broker=broker,
        store=store,
        notifier=notifier,
        wallets=wallets,
        orders=orders,
        executor=executor,
        monitor=monitor,
    )
