"""
StockERP Application
====================

Wires the database, caches, repositories and services together and owns
their lifecycle. Caches are long-lived components created once per
application and reset only through explicit warming.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import Engine

from .cache import EntityCache
from .config import AppSettings
from .core import EventDispatcher
from .database import DatabaseManager, init_database
from .errors import DatabaseErrorHandler, RetryConfig
from .facades import (
    EntityService, InventoryService, OrderItemService, OrderService, ProductService, UserService
)
from .models import OrderStatus
from .readers import (
    CategoryReadService, EntityReadService, InventoryReadService, OrderItemReadService,
    OrderReadService, ProductReadService, UserReadService
)
from .repositories import (
    CategoryRepository, CustomerRepository, InventoryMovementRepository, InventoryRepository,
    InventoryTransactionRepository, LocationRepository, OrderItemRepository, OrderRepository,
    ProductRepository, SqlAlchemyRepository, SupplierRepository, UserRepository
)
from .security import PasswordManager
from .stores import (
    CategoryCache, CustomerCache, InventoryCache, LocationCache, OrderCache, OrderItemCache,
    ProductCache, SupplierCache, UserCache
)
from .validation import EntityValidationService, ValidationRule
from .writers import (
    CategoryWriteService, CustomerWriteService, EntityWriteService, InventoryWriteService,
    LocationWriteService, OrderItemWriteService, OrderWriteService, ProductWriteService, SupplierWriteService,
    UserWriteService
)

logger = logging.getLogger(__name__)


class StockERPApplication:
    """Main application class that wires together all components."""

    def __init__(self, settings: AppSettings, engine: Optional[Engine] = None,
                 error_handler: Optional[DatabaseErrorHandler] = None):
        self.settings = settings
        self._engine = engine
        self.db_manager: Optional[DatabaseManager] = None
        self.event_dispatcher = EventDispatcher()
        self.error_handler = error_handler or DatabaseErrorHandler(RetryConfig.from_settings(settings.retry))
        self.password_manager = PasswordManager()

        # Caches
        self.customer_cache = CustomerCache()
        self.supplier_cache = SupplierCache()
        self.item_cache = OrderItemCache()
        self.order_cache = OrderCache(self.customer_cache, self.supplier_cache, self.item_cache)
        self.product_cache = ProductCache()
        self.category_cache = CategoryCache()
        self.location_cache = LocationCache()
        self.user_cache = UserCache()
        self.inventory_cache = InventoryCache()

        # Services, keyed by plural resource name
        self.services: Dict[str, EntityService] = {}
        self._refresh_tasks: List[asyncio.Task] = []
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # ---------- lifecycle ----------

    async def initialize(self) -> None:
        """Initialize the database, build every service and warm the caches."""
        if self._initialized:
            return

        try:
            logger.info(f"Initializing {self.settings.app_name} application...")

            self.db_manager = init_database(self.settings.database, create_tables=True, engine=self._engine)
            self._initialize_services()
            self._initialized = True

            if self.settings.cache.enabled and self.settings.cache.warm_on_startup:
                await self.warm_caches()
            if self.settings.cache.enabled and self.settings.cache.refresh_on_startup:
                self.refresh_all_caches()

            logger.info(f"{self.settings.app_name} application initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize {self.settings.app_name} application: {e}")
            raise

    def _initialize_services(self) -> None:
        session_manager = self.db_manager.session_manager

        products = ProductRepository(session_manager)
        categories = CategoryRepository(session_manager)
        customers = CustomerRepository(session_manager)
        suppliers = SupplierRepository(session_manager)
        locations = LocationRepository(session_manager)
        users = UserRepository(session_manager)
        orders = OrderRepository(session_manager)
        items = OrderItemRepository(session_manager)
        inventory = InventoryRepository(session_manager)
        transactions = InventoryTransactionRepository(session_manager)
        movements = InventoryMovementRepository(session_manager)

        checks = {
            "products": self._validation(self.product_cache, products),
            "categories": self._validation(self.category_cache, categories),
            "customers": self._validation(self.customer_cache, customers),
            "suppliers": self._validation(self.supplier_cache, suppliers),
            "locations": self._validation(self.location_cache, locations),
            "users": self._validation(self.user_cache, users),
            "orders": self._validation(self.order_cache, orders),
            "order_items": self._validation(self.item_cache, items),
            "inventory": self._validation(self.inventory_cache, inventory),
        }
        self._register_rules(checks, products, categories, orders, items, inventory)

        inventory_service = self._compose(
            InventoryService, InventoryReadService, InventoryWriteService, self.inventory_cache, inventory,
            checks["inventory"],
            references={"product_id": checks["products"], "location_id": checks["locations"]},
            reader_options={"transactions": transactions, "movements": movements, "products": products},
            transaction_repository=transactions
        )

        self.services = {
            "products": self._compose(
                ProductService, ProductReadService, ProductWriteService, self.product_cache, products,
                checks["products"], references={"category_id": checks["categories"], "supplier_id": checks["suppliers"]}
            ),
            "categories": self._compose(
                EntityService, CategoryReadService, CategoryWriteService, self.category_cache, categories,
                checks["categories"], references={"parent_category_id": checks["categories"]}
            ),
            "customers": self._compose(
                EntityService, EntityReadService, CustomerWriteService, self.customer_cache, customers,
                checks["customers"]
            ),
            "suppliers": self._compose(
                EntityService, EntityReadService, SupplierWriteService, self.supplier_cache, suppliers,
                checks["suppliers"]
            ),
            "locations": self._compose(
                EntityService, EntityReadService, LocationWriteService, self.location_cache, locations,
                checks["locations"]
            ),
            "users": self._compose(
                UserService, UserReadService, UserWriteService, self.user_cache, users,
                checks["users"], password_manager=self.password_manager
            ),
            "orders": self._compose(
                OrderService, OrderReadService, OrderWriteService, self.order_cache, orders,
                checks["orders"],
                references={
                    "customer_id": checks["customers"],
                    "supplier_id": checks["suppliers"],
                    "location_id": checks["locations"],
                },
                item_cache=self.item_cache,
                item_repository=items,
                inventory=inventory_service.writer
            ),
            "order_items": self._compose(
                OrderItemService, OrderItemReadService, OrderItemWriteService, self.item_cache, items,
                checks["order_items"], references={"order_id": checks["orders"], "product_id": checks["products"]},
                order_cache=self.order_cache,
                order_repository=orders
            ),
            "inventory": inventory_service,
        }

    def _validation(self, cache: EntityCache, repository: SqlAlchemyRepository) -> EntityValidationService:
        return EntityValidationService(cache, repository, self.error_handler)

    def _compose(
        self,
        facade_type: Type[EntityService],
        reader_type: Type[EntityReadService],
        writer_type: Type[EntityWriteService],
        cache: EntityCache,
        repository: SqlAlchemyRepository,
        validation: EntityValidationService,
        references: Optional[Dict[str, EntityValidationService]] = None,
        reader_options: Optional[Dict[str, Any]] = None,
        **writer_options: Any
    ) -> EntityService:
        reader = reader_type(cache, repository, self.error_handler, **(reader_options or {}))
        writer = writer_type(
            cache, repository, validation, self.error_handler,
            event_dispatcher=self.event_dispatcher, references=references, **writer_options
        )
        return facade_type(reader, writer, validation)

    def _register_rules(self, checks: Dict[str, EntityValidationService], products: ProductRepository,
                        categories: CategoryRepository, orders: OrderRepository,
                        items: OrderItemRepository, inventory: InventoryRepository) -> None:
        order_cache = self.order_cache
        inventory_cache = self.inventory_cache

        async def customer_open_orders(customer_id: int) -> Optional[str]:
            if order_cache.customer_has_open_orders(customer_id) or await orders.customer_has_orders(customer_id):
                return (f"Cannot delete customer with ID {customer_id} because they have active orders. "
                        f"Complete or cancel orders first.")
            return None

        async def supplier_open_orders(supplier_id: int) -> Optional[str]:
            if order_cache.supplier_has_open_orders(supplier_id) or await orders.supplier_has_orders(supplier_id):
                return (f"Cannot delete supplier with ID {supplier_id} because they have active orders. "
                        f"Complete or cancel orders first.")
            return None

        async def supplier_products(supplier_id: int) -> Optional[str]:
            if await products.has_products_from_supplier(supplier_id):
                return f"Cannot delete supplier with ID {supplier_id} because products still reference it."
            return None

        async def category_children(category_id: int) -> Optional[str]:
            if await categories.has_children(category_id):
                return f"Cannot delete category with ID {category_id} because it has subcategories."
            return None

        async def category_products(category_id: int) -> Optional[str]:
            if await products.has_products_in_category(category_id):
                return f"Cannot delete category with ID {category_id} because it contains products."
            return None

        async def product_in_orders(product_id: int) -> Optional[str]:
            if await items.get_by_product(product_id):
                return f"Cannot permanently delete product with ID {product_id} because it is used in orders."
            return None

        async def product_inventory(product_id: int) -> Optional[str]:
            if await inventory.product_has_inventory(product_id):
                return f"Cannot permanently delete product with ID {product_id} because it has inventory records."
            return None

        async def location_inventory(location_id: int) -> Optional[str]:
            if inventory_cache.get_by_location(location_id) or await inventory.location_has_inventory(location_id):
                return f"Cannot delete location with ID {location_id} because it holds inventory."
            return None

        async def inventory_reserved(inventory_id: int) -> Optional[str]:
            if inventory_cache.has_reserved_stock(inventory_id):
                reserved = True
            else:
                stored = await inventory.get_by_id(inventory_id)
                reserved = stored is not None and stored.reserved_stock > 0
            if reserved:
                return f"Cannot delete inventory with ID {inventory_id} while stock is reserved for orders."
            return None

        async def order_active(order_id: int) -> Optional[str]:
            order = order_cache.get_by_id(order_id) or await orders.get_by_id(order_id)
            if order is not None and order.status == OrderStatus.ACTIVE:
                return f"Cannot permanently delete active order with ID {order_id}. Cancel it first."
            return None

        customer_rule = ValidationRule("customer-open-orders", customer_open_orders)
        checks["customers"].add_deletion_rule(customer_rule)
        checks["customers"].add_hard_deletion_rule(customer_rule)

        supplier_rule = ValidationRule("supplier-open-orders", supplier_open_orders)
        checks["suppliers"].add_deletion_rule(supplier_rule)
        checks["suppliers"].add_hard_deletion_rule(supplier_rule)
        checks["suppliers"].add_hard_deletion_rule(ValidationRule("supplier-products", supplier_products))

        for rule in (ValidationRule("category-children", category_children),
                     ValidationRule("category-products", category_products)):
            checks["categories"].add_deletion_rule(rule)
            checks["categories"].add_hard_deletion_rule(rule)

        checks["products"].add_hard_deletion_rule(ValidationRule("product-in-orders", product_in_orders))
        checks["products"].add_hard_deletion_rule(ValidationRule("product-inventory", product_inventory))

        location_rule = ValidationRule("location-inventory", location_inventory)
        checks["locations"].add_deletion_rule(location_rule)
        checks["locations"].add_hard_deletion_rule(location_rule)

        checks["inventory"].add_hard_deletion_rule(ValidationRule("inventory-reserved", inventory_reserved))
        checks["orders"].add_hard_deletion_rule(ValidationRule("order-active", order_active))

    # ---------- typed accessors ----------

    @property
    def products(self) -> ProductService:
        return self.services["products"]

    @property
    def categories(self) -> EntityService:
        return self.services["categories"]

    @property
    def customers(self) -> EntityService:
        return self.services["customers"]

    @property
    def suppliers(self) -> EntityService:
        return self.services["suppliers"]

    @property
    def locations(self) -> EntityService:
        return self.services["locations"]

    @property
    def users(self) -> UserService:
        return self.services["users"]

    @property
    def orders(self) -> OrderService:
        return self.services["orders"]

    @property
    def order_items(self) -> OrderItemService:
        return self.services["order_items"]

    @property
    def inventory(self) -> InventoryService:
        return self.services["inventory"]

    # ---------- cache management ----------

    async def warm_caches(self) -> Dict[str, Optional[int]]:
        """
        Load every cache from the database concurrently.

        Returns:
            Dict mapping resource name to the number of cached records, or
            None for caches that failed to load
        """
        if not self._initialized:
            raise RuntimeError("Application not initialized")

        names = list(self.services)
        results = await asyncio.gather(
            *(self.services[name].get_all_active() for name in names),
            return_exceptions=True
        )

        counts: Dict[str, Optional[int]] = {}
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error(f"Warming the {name} cache raised: {result}")
                counts[name] = None
            elif result.is_error():
                logger.warning(f"Warming the {name} cache failed: {result.error_message}")
                counts[name] = None
            else:
                counts[name] = self.services[name].cache.count()

        loaded = sum(count for count in counts.values() if count is not None)
        logger.info(f"Cache warming finished: {loaded} record(s) across {len(names)} cache(s)")
        return counts

    def refresh_all_caches(self) -> List[asyncio.Task]:
        """Start a background refresh of every cache."""
        tasks = [service.refresh_cache() for service in self.services.values()]
        self._refresh_tasks = tasks
        return tasks

    def get_cache_statistics(self) -> Dict[str, Dict[str, Any]]:
        return {name: service.get_cache_statistics() for name, service in self.services.items()}

    async def get_health_status(self) -> Dict[str, Any]:
        if not self._initialized:
            return {'status': 'not_initialized'}

        database_ok = self.db_manager.session_manager.health_check()
        return {
            'status': 'healthy' if database_ok else 'unhealthy',
            'version': self.settings.app_version,
            'environment': self.settings.environment.value,
            'database': 'ok' if database_ok else 'unavailable',
            'caches': {name: stats['count'] for name, stats in self.get_cache_statistics().items()},
        }

    async def cleanup(self) -> None:
        """Clean up application resources."""
        logger.info(f"Cleaning up {self.settings.app_name} application...")

        for task in self._refresh_tasks:
            if not task.done():
                task.cancel()
        self._refresh_tasks = []

        for service in self.services.values():
            service.cache.clear()

        if self.db_manager is not None:
            self.db_manager.close()

        self._initialized = False
        logger.info(f"{self.settings.app_name} application cleanup completed")

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()
