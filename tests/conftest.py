# tests/conftest.py
"""
Pytest Configuration and Shared Fixtures
========================================

Shared fixtures for the StockERP test suite: an in-memory SQLite engine,
a fully wired application, a FastAPI test client and small factories for
domain records and request payloads.

Fixtures provided:
- test_settings: AppSettings for the testing environment
- engine / session_manager: in-memory database with the schema created
- error_handler: DatabaseErrorHandler without retry delays
- application: initialized StockERPApplication
- client: FastAPI TestClient bound to its own application
- recorded_events: domain events dispatched by the application
"""

import asyncio
import logging
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from stockerp.api import create_app
from stockerp.application import StockERPApplication
from stockerp.config import (
    AppSettings, CacheSettings, DatabaseSettings, Environment, LoggingSettings, RetrySettings
)
from stockerp.core import DomainEvent, EventHandler
from stockerp.database import DatabaseEngineFactory, SessionManager, create_database_tables
from stockerp.errors import DatabaseErrorHandler, RetryConfig
from stockerp.models import Customer, Order, OrderItem, OrderType, Product, Supplier

from . import DEFAULT_CREATED_BY

# Reduce noise from external libraries during testing
logging.getLogger('sqlalchemy').setLevel(logging.WARNING)
logging.getLogger('asyncio').setLevel(logging.WARNING)


# ==================== PYTEST CONFIGURATION ====================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: tests that wire the whole application")
    config.addinivalue_line("markers", "api: REST API tests")


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "test_api" in item.nodeid:
            item.add_marker(pytest.mark.api)


# ==================== CONFIGURATION FIXTURES ====================

@pytest.fixture
def test_settings() -> AppSettings:
    """Testing settings: in-memory database, no retry delays, no log files."""
    return AppSettings(
        environment=Environment.TESTING,
        testing=True,
        database=DatabaseSettings(sqlite_file=":memory:"),
        cache=CacheSettings(enabled=True, warm_on_startup=True),
        retry=RetrySettings(max_retries=0, initial_delay=0.0),
        logging=LoggingSettings(file_enabled=False, console_enabled=False)
    )


# ==================== DATABASE FIXTURES ====================

@pytest.fixture
def engine(test_settings):
    """In-memory SQLite engine on a StaticPool with foreign keys enforced."""
    db_engine = DatabaseEngineFactory.create_engine(test_settings.database)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_manager(engine) -> SessionManager:
    create_database_tables(engine)
    return SessionManager(engine)


@pytest.fixture
def error_handler() -> DatabaseErrorHandler:
    return DatabaseErrorHandler(RetryConfig(max_retries=0, initial_delay=0.0))


# ==================== APPLICATION FIXTURES ====================

@pytest_asyncio.fixture
async def application(test_settings, engine):
    """Initialized application sharing the in-memory engine."""
    app = StockERPApplication(test_settings, engine=engine)
    await app.initialize()
    yield app
    await app.cleanup()


class RecordingHandler(EventHandler):
    """Collects every dispatched domain event."""

    def __init__(self):
        self.events: List[DomainEvent] = []

    async def handle(self, event: DomainEvent) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [event.event_type for event in self.events]


@pytest.fixture
def recorded_events(application) -> RecordingHandler:
    handler = RecordingHandler()
    application.event_dispatcher.subscribe_global(handler)
    return handler


@pytest.fixture
def client(test_settings, engine):
    """
    TestClient over an application owned by the fixture.

    The client is not entered as a context manager, so the FastAPI lifespan
    does not run and the fixture controls initialization and cleanup.
    """
    app = StockERPApplication(test_settings, engine=engine)
    asyncio.run(app.initialize())
    test_client = TestClient(create_app(application=app))
    test_client.application = app
    yield test_client
    asyncio.run(app.cleanup())


# ==================== FACTORIES ====================

def make_product(entity_id: int = 0, **overrides: Any) -> Product:
    values = {"name": "Widget", "sku": "X1", "created_by": DEFAULT_CREATED_BY}
    values.update(overrides)
    return Product(id=entity_id, **values)


def make_customer(entity_id: int = 0, **overrides: Any) -> Customer:
    values = {"name": "Acme Retail", "email": "buyer@acme.test"}
    values.update(overrides)
    return Customer(id=entity_id, **values)


def make_supplier(entity_id: int = 0, **overrides: Any) -> Supplier:
    values = {"name": "Bolt Works", "email": "sales@bolt.test"}
    values.update(overrides)
    return Supplier(id=entity_id, **values)


def make_order(entity_id: int = 0, **overrides: Any) -> Order:
    values = {"order_type": OrderType.SALE, "customer_id": 1, "created_by": DEFAULT_CREATED_BY}
    values.update(overrides)
    return Order(id=entity_id, **values)


def make_item(entity_id: int = 0, **overrides: Any) -> OrderItem:
    values = {"order_id": 1, "product_id": 1, "quantity": 1}
    values.update(overrides)
    return OrderItem(id=entity_id, **values)


def product_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {"name": "Widget", "sku": "X1", "created_by": DEFAULT_CREATED_BY, "price": "9.99", "cost": "4.50"}
    payload.update(overrides)
    return payload


def customer_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {"name": "Acme Retail", "email": "buyer@acme.test", "phone": "555-0100"}
    payload.update(overrides)
    return payload


def supplier_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {"name": "Bolt Works", "email": "sales@bolt.test", "phone": "555-0200"}
    payload.update(overrides)
    return payload


def user_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {"username": "jdoe", "password": "secret123", "full_name": "Jane Doe"}
    payload.update(overrides)
    return payload
