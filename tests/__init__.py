# tests/__init__.py
"""
StockERP Test Suite
===================

Automated tests for the StockERP inventory and order management backend.

Test Structure:
- conftest.py: Shared pytest configuration and fixtures
- test_cache.py: Generic entity cache engine
- test_stores.py: Per-entity caches and the order list projections
- test_errors.py: Error classification and retries
- test_config.py: Configuration loading and validation
- test_repositories.py: SQLAlchemy repositories
- test_services.py: Validation, write, read and facade services
- test_orders.py: Order lifecycle through the application
- test_inventory.py: Stock levels, reservations, transfers and ledgers
- test_api.py: REST API endpoint integration tests
- test_cli.py: Typer command line interface

Usage:
    # Run all tests
    pytest tests/

    # Run with coverage
    pytest --cov=stockerp tests/

Requirements:
- pytest >= 7.4.0
- pytest-asyncio >= 0.21.1
- pytest-cov >= 4.1.0
- httpx >= 0.24.0 (for API testing)

Author: StockERP Development Team
License: MIT
Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "StockERP Development Team"

# Test data constants
DEFAULT_CREATED_BY = 7

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_EMAIL = "admin@stockerp.local"
DEFAULT_ADMIN_PASSWORD = "admin123456"

__all__ = [
    "DEFAULT_CREATED_BY",
    "DEFAULT_ADMIN_USERNAME",
    "DEFAULT_ADMIN_EMAIL",
    "DEFAULT_ADMIN_PASSWORD",
]
