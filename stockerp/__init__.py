"""
StockERP - Inventory and Order Management Backend
=================================================

StockERP persists products, categories, customers, suppliers, locations,
users, orders and order items in a relational database and serves them
through layered services backed by per-entity in-memory caches.

Architecture:
- models: immutable domain records and pydantic input models
- cache / stores: write-through entity caches with secondary indexes
- repositories: SQLAlchemy backing-store adapters
- validation / writers / readers / facades: the service layer
- application: wiring and lifecycle
- api / cli: FastAPI and typer surfaces

Usage:
    # Start the API server
    python -m stockerp runserver

    # Programmatic usage
    from stockerp import StockERPApplication, ConfigurationManager

    settings = ConfigurationManager().load_config()
    async with StockERPApplication(settings) as app:
        result = await app.products.create({"name": "Widget", "sku": "X1", "created_by": 7})

License: MIT
Author: StockERP Development Team
Version: 1.0.0
"""

import logging

__version__ = "1.0.0"
__author__ = "StockERP Development Team"
__license__ = "MIT"
__title__ = "stockerp"
__description__ = "Inventory and order management backend with write-through entity caches"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .application import StockERPApplication
from .cache import CacheObserver, CacheQuery, CallbackObserver, EntityCache
from .config import AppSettings, ConfigurationManager, configure_logging, get_config
from .core import (
    CacheIntegrityError, ErrorCode, EventDispatcher, PaginatedResult, PaginationParams,
    ServiceError, ServiceResult
)
from .errors import DatabaseErrorHandler, RetryConfig
from .facades import EntityService
from .validation import ValidationRule

__all__ = [
    '__version__',
    'StockERPApplication',
    'EntityCache', 'CacheQuery', 'CacheObserver', 'CallbackObserver',
    'AppSettings', 'ConfigurationManager', 'configure_logging', 'get_config',
    'CacheIntegrityError', 'ErrorCode', 'EventDispatcher', 'PaginatedResult',
    'PaginationParams', 'ServiceError', 'ServiceResult',
    'DatabaseErrorHandler', 'RetryConfig', 'EntityService', 'ValidationRule',
]
