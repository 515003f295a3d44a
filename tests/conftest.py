import os

# settings are read at import time
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key-for-testing-only")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("MONITOR_ENABLED", "false")

from datetime import timedelta
from decimal import Decimal
from itertools import count
from unittest.mock import Mock

import pytest

from limit_engine.db.base import Base
from limit_engine.db.session import make_engine, make_session_factory
from limit_engine.db.types import utcnow
from limit_engine.models import Direction, Order
from limit_engine.services.chain import ChainClient, TxReceipt
from limit_engine.services.executor import OrderExecutor
from limit_engine.services.monitor import OrderMonitor
from limit_engine.services.notification_service import NotificationService
from limit_engine.services.order_store import OrderStore
from limit_engine.services.price_oracle import PriceOracleClient
from limit_engine.services.swap_planner import SwapPlanClient
from limit_engine.services.vault import SecretVault

from factories import PENGU, PRIVATE_KEY, WALLET_ADDRESS, WETH, swap_plan


@pytest.fixture(scope="session")
def vault() -> SecretVault:
    return SecretVault("test-encryption-key-for-testing-only", "test-salt")


@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite so worker threads get their own connections."""
    engine = make_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def broker():
    broker = Mock()
    broker.publish = Mock()
    return broker


@pytest.fixture
def notifier(session_factory, broker) -> NotificationService:
    return NotificationService(session_factory, broker)


@pytest.fixture
def store(session_factory) -> OrderStore:
    return OrderStore(session_factory, lease_seconds=300)


@pytest.fixture
def oracle():
    return Mock(spec=PriceOracleClient)


@pytest.fixture
def planner():
    planner = Mock(spec=SwapPlanClient)
    planner.plan_swap.return_value = swap_plan("swap")
    return planner


@pytest.fixture
def chain():
    """Chain client whose every submission confirms with a fresh hash."""
    chain = Mock(spec=ChainClient)
    hashes = count(1)

    def sign_and_send(wallet, request, on_submitted=None):
        tx_hash = f"0x{next(hashes):064x}"
        if on_submitted is not None:
            on_submitted(tx_hash)
        return TxReceipt(tx_hash=tx_hash, block_number=100, gas_used=21000, status=1)

    chain.sign_and_send.side_effect = sign_and_send
    chain.get_receipt.return_value = None
    chain.is_known.return_value = False
    return chain


@pytest.fixture
def executor(store, planner, chain, notifier) -> OrderExecutor:
    return OrderExecutor(store, planner, chain, notifier)


@pytest.fixture
def monitor(store, oracle, executor, notifier) -> OrderMonitor:
    return OrderMonitor(store, oracle, executor, notifier, interval=0.01, max_workers=1)


@pytest.fixture
def make_order(store, vault):
    def _make(**overrides) -> Order:
        fields = dict(
            owner_id=42,
            wallet_address=WALLET_ADDRESS,
            wallet_encrypted_secret=vault.encrypt(PRIVATE_KEY),
            direction=Direction.SELL,
            token_in=PENGU,
            token_out=WETH,
            amount=10_000 * 10**18,
            trigger_price=Decimal("0.01"),
            slippage=Decimal("0.05"),
            expiry_at=utcnow() + timedelta(hours=1),
        )
        fields.update(overrides)
        order = Order(**fields)
        store.create(order)
        return store.get(order.id)

    return _make
