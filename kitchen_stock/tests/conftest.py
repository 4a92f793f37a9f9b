"""Pytest configuration and fixtures for service layer tests."""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker

from kitchen_stock.models.base import Base
from kitchen_stock.utils.config import reset_config


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    # Import all models so they are registered with Base
    from kitchen_stock import models  # noqa: F401

    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import kitchen_stock.services.database as db_module

    original_get_session_factory = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    yield Session

    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    db_module.get_session_factory = original_get_session_factory


@pytest.fixture(scope="function")
def file_db(tmp_path, monkeypatch):
    """Provide a file-backed SQLite database shared by several threads.

    Each session_scope() gets its own Session (no scoped_session), so worker
    threads never share a session.
    """
    from kitchen_stock.services import database as db_module

    engine = db_module.create_database_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    db_module.init_database(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    monkeypatch.setattr(db_module, "get_session_factory", lambda: session_factory)

    yield session_factory

    engine.dispose()


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Isolate tests from KITCHEN_STOCK_* settings of the environment."""
    for name in (
        "KITCHEN_STOCK_ENV",
        "KITCHEN_STOCK_DATABASE_URL",
        "KITCHEN_STOCK_DB_TIMEOUT",
        "KITCHEN_STOCK_ADJUSTMENT_UNIT_COST",
        "KITCHEN_STOCK_LOW_STOCK_THRESHOLD",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


def _create_catalog():
    from kitchen_stock.services import catalog_service

    kitchen = catalog_service.create_kitchen("Koramangala", "CK-01", address="80 Feet Road")
    other_kitchen = catalog_service.create_kitchen("Indiranagar", "CK-02")
    outlet = catalog_service.create_outlet(kitchen.id, "Biryani Counter", "OUT-01")
    rice = catalog_service.create_raw_material("Basmati Rice", "kg", "Grains")
    oil = catalog_service.create_raw_material(
        "Sunflower Oil", "l", "Oils", low_stock_threshold=Decimal("5")
    )
    return {
        "kitchen_id": kitchen.id,
        "other_kitchen_id": other_kitchen.id,
        "outlet_id": outlet.id,
        "rice_id": rice.id,
        "oil_id": oil.id,
    }


def _receive_two_batches(catalog):
    from kitchen_stock.services.batch_ledger_service import receive_batch

    b1 = receive_batch(
        catalog["kitchen_id"],
        catalog["rice_id"],
        Decimal("10"),
        Decimal("2"),
        received_at=datetime(2026, 1, 5, 9, 0),
    )
    b2 = receive_batch(
        catalog["kitchen_id"],
        catalog["rice_id"],
        Decimal("10"),
        Decimal("3"),
        received_at=datetime(2026, 1, 6, 9, 0),
    )
    return {**catalog, "b1_id": b1.id, "b2_id": b2.id}


@pytest.fixture
def catalog(test_db):
    """Two kitchens, one outlet and two raw materials.

    Returns dict with kitchen_id, other_kitchen_id, outlet_id, rice_id, oil_id.
    """
    return _create_catalog()


@pytest.fixture
def two_batches(catalog):
    """Rice in kitchen CK-01 received as two batches.

    B1: older (Jan 5), 10 kg @ 2.00
    B2: newer (Jan 6), 10 kg @ 3.00
    """
    return _receive_two_batches(catalog)


@pytest.fixture
def file_two_batches(file_db):
    """Same data as two_batches on the file-backed database."""
    return _receive_two_batches(_create_catalog())
