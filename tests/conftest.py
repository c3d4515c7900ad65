"""
Pytest fixtures for the factory execution tracker test suite.

Provides:
- Structured-logging fixtures (captured_logs)
- An in-memory SQLite engine and a per-test session rolled back at teardown
- A ``store`` fixture parametrized over the in-memory and SQLAlchemy adapters,
  so every service test runs against both
- Seed factories for materials, products, BOM lines, batches and lots
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy.orm import Session

from mes_config.schema import EngineSettings
from mes_kernel.db.engine import create_tables, init_engine_from_url, reset_engine
from mes_kernel.domain.clock import DeterministicClock
from mes_kernel.domain.records import BomItemType
from mes_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from mes_kernel.storage import InMemoryStockStore, SqlAlchemyStockStore

T0 = datetime(2025, 3, 14, 8, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture mes_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.deduct_for_production(...)
            logs = captured_logs()
            assert any(r["message"] == "bom_deduction_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("mes_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """One in-memory SQLite database for the whole run."""
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session(db_engine) -> Session:
    """
    Session bound to an outer transaction that is rolled back after the test.

    Commits inside the test become savepoint releases, so nothing leaks
    between tests.
    """
    connection = db_engine.connect()
    transaction = connection.begin()
    sess = Session(bind=connection, join_transaction_mode="create_savepoint")
    yield sess
    sess.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(params=["memory", "sqlalchemy"])
def store(request):
    """The same StockStore contract over both adapters."""
    if request.param == "memory":
        return InMemoryStockStore()
    return SqlAlchemyStockStore(request.getfixturevalue("session"))


@pytest.fixture
def memory_store() -> InMemoryStockStore:
    return InMemoryStockStore()


@pytest.fixture
def sql_store(session) -> SqlAlchemyStockStore:
    return SqlAlchemyStockStore(session)


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(T0)


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


# =============================================================================
# Seed factories
# =============================================================================


@pytest.fixture
def make_material(store):
    counter = {"n": 0}

    def _make(code: str | None = None, name: str | None = None, safe_stock="0", unit="EA"):
        counter["n"] += 1
        code = code or f"MAT-{counter['n']:03d}"
        return store.add_material(
            code=code,
            name=name or f"Material {code}",
            unit=unit,
            safe_stock=Decimal(safe_stock),
        )

    return _make


@pytest.fixture
def make_product(store):
    counter = {"n": 0}

    def _make(code: str | None = None, name: str | None = None):
        counter["n"] += 1
        code = code or f"PRD-{counter['n']:03d}"
        return store.add_product(code=code, name=name or f"Product {code}")

    return _make


@pytest.fixture
def add_bom_line(store):
    def _add(product, material=None, qty="1", process_code=None, child_product=None):
        if child_product is not None:
            return store.add_bom_line(
                product_id=product.id,
                item_type=BomItemType.PRODUCT,
                child_product_id=child_product.id,
                quantity_per_unit=Decimal(qty),
                process_code=process_code,
            )
        return store.add_bom_line(
            product_id=product.id,
            item_type=BomItemType.MATERIAL,
            material_id=material.id,
            quantity_per_unit=Decimal(qty),
            process_code=process_code,
        )

    return _add


@pytest.fixture
def make_batch(store):
    """Batches received one minute apart, in call order, unless told otherwise."""
    counter = {"n": 0}

    def _make(material, qty, lot_number: str | None = None, received_at=None, location=None):
        counter["n"] += 1
        return store.add_batch(
            material_id=material.id,
            lot_number=lot_number or f"B-{counter['n']:03d}",
            quantity=Decimal(qty),
            received_at=received_at or T0 + timedelta(minutes=counter["n"]),
            location=location,
        )

    return _make


@pytest.fixture
def make_lot(store):
    counter = {"n": 0}

    def _make(product=None, process_code="CA", parent=None, lot_number=None, qty="0"):
        counter["n"] += 1
        return store.add_lot(
            lot_number=lot_number or f"{process_code}-250314-{counter['n']:04d}",
            process_code=process_code,
            product_id=product.id if product else None,
            planned_qty=Decimal(qty),
            started_at=T0 + timedelta(hours=counter["n"]),
            parent_lot_id=parent.id if parent else None,
        )

    return _make
