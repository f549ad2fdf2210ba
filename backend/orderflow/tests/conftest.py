"""
Root test configuration and fixtures.

Provides:
- fake_clock: Controllable UTC clock for the processor
- settings: Fast FulfillmentSettings for scheduler tests
- memory_store: InMemoryOrderStore seeded with one pending order
- db_engine / session_factory: SQLite in-memory database for the SQL store
- make_yaml_config: Factory for writing YAML configs to a temp dir
"""

import os
import random
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from orderflow.config.fulfillment import FulfillmentSettings, reset_fulfillment_settings
from orderflow.store.memory import InMemoryOrderStore

# Set test environment
os.environ.setdefault("ENV", "test")

ORDER_ID = "order-1"
PRODUCT_ID = "product-1"
UPSTREAM_REFERENCE = "SUP-1001"
KIOSK_TOKEN = "kiosk-token"


class FakeClock:
    """Manually advanced clock returning timezone-aware UTC datetimes."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture(autouse=True)
def _reset_settings():
    """Drop cached settings between tests."""
    reset_fulfillment_settings()
    yield
    reset_fulfillment_settings()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def rng():
    """Seeded random source for deterministic jitter."""
    return random.Random(42)


@pytest.fixture
def settings():
    """Settings with a short poll interval and the default attempt budget."""
    return FulfillmentSettings(
        poll_interval_seconds=0.01,
        batch_size=5,
        max_attempts=15,
        supplier_timeout_seconds=1.0,
        supplier_kiosk_token="default-kiosk-token",
    )


@pytest.fixture
def memory_store():
    """In-memory store with one product (stock 10) and one pending order."""
    store = InMemoryOrderStore()
    store.create_product({"id": PRODUCT_ID, "title": "Streaming account", "stock": 10, "sold": 2})
    store.create_order({
        "id": ORDER_ID,
        "product_id": PRODUCT_ID,
        "selected_option_id": None,
        "quantity": 1,
        "status": "pending",
        "upstream_order_id": UPSTREAM_REFERENCE,
    })
    return store


@pytest.fixture
def db_engine():
    """SQLite in-memory engine with all tables created."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from orderflow.db_base import Base
    from orderflow.models import order, product  # noqa: F401 - register tables

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=db_engine,
    )


# =============================================================================
# Config fixtures
# =============================================================================


@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for YAML config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_yaml_config(temp_config_dir):
    """
    Factory fixture that writes a YAML config file and returns its path.

    Usage:
        config_path = make_yaml_config("order_fulfillment.yml", {"fulfillment": {...}})
    """
    def _make(filename: str, config: dict) -> Path:
        config_path = temp_config_dir / filename
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        return config_path
    return _make
