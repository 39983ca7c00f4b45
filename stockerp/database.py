"""
StockERP Database Module
========================

This module provides database connectivity, session management and the
relational schema backing the StockERP entity stores. It supports SQLite,
PostgreSQL and MySQL through SQLAlchemy.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import logging
import re
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from sqlalchemy import (
    Boolean, Column, DateTime, Engine, ForeignKey, Index, Integer, Numeric, String,
    Text, UniqueConstraint, create_engine, event, inspect
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.sql import text

from .config import DatabaseEngine, DatabaseSettings

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ==================== BASE MODEL DEFINITIONS ====================

Base = declarative_base()
metadata = Base.metadata


class DatabaseModel(Base):
    """
    Base model class for all database entities.
    Provides the identity column and audit timestamps.
    """
    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert model instance to dictionary."""
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"


class SoftDeleteColumns:
    """Soft-delete lifecycle columns shared by deletable tables."""

    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


# ==================== SCHEMA ====================
#
# Each *_key column holds the casefolded form of its unique column, written by
# the repositories. Key lookups compare against it instead of the raw value.

class CategoryRow(SoftDeleteColumns, DatabaseModel):
    __tablename__ = "categories"

    name = Column(String(100), nullable=False, index=True)
    name_key = Column(String(100), nullable=True, index=True)
    description = Column(Text, nullable=True)
    parent_category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    image_url = Column(String(500), nullable=True)


class SupplierRow(SoftDeleteColumns, DatabaseModel):
    __tablename__ = "suppliers"

    name = Column(String(200), nullable=False)
    email = Column(String(254), nullable=True, index=True)
    phone = Column(String(30), nullable=True, index=True)
    email_key = Column(String(254), nullable=True, index=True)
    phone_key = Column(String(30), nullable=True, index=True)
    address = Column(String(500), nullable=True)


class CustomerRow(SoftDeleteColumns, DatabaseModel):
    __tablename__ = "customers"

    name = Column(String(200), nullable=False)
    email = Column(String(254), nullable=True, index=True)
    phone = Column(String(30), nullable=True, index=True)
    email_key = Column(String(254), nullable=True, index=True)
    phone_key = Column(String(30), nullable=True, index=True)
    address = Column(String(500), nullable=True)


class LocationRow(SoftDeleteColumns, DatabaseModel):
    __tablename__ = "locations"

    name = Column(String(100), nullable=False, index=True)
    name_key = Column(String(100), nullable=True, index=True)
    description = Column(Text, nullable=True)
    location_type = Column(String(20), nullable=False, default="unknown")
    address = Column(String(500), nullable=True)


class UserRow(SoftDeleteColumns, DatabaseModel):
    __tablename__ = "users"

    username = Column(String(50), nullable=False, index=True)
    username_key = Column(String(50), nullable=True, index=True)
    password_hash = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default="employee")
    full_name = Column(String(200), nullable=True)
    email = Column(String(254), nullable=True)
    enabled = Column(Boolean, default=True, nullable=False)


class ProductRow(SoftDeleteColumns, DatabaseModel):
    __tablename__ = "products"

    name = Column(String(200), nullable=False)
    sku = Column(String(50), nullable=False, index=True)
    sku_key = Column(String(50), nullable=True, index=True)
    description = Column(Text, nullable=False, default="")
    barcode = Column(String(50), nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    cost = Column(Numeric(12, 2), nullable=False, default=0)
    min_stock_level = Column(Integer, nullable=False, default=0)
    max_stock_level = Column(Integer, nullable=False, default=0)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    created_by = Column(Integer, nullable=False)
    created_date = Column(DateTime(timezone=True), nullable=True)
    updated_date = Column(DateTime(timezone=True), nullable=True)


class OrderRow(DatabaseModel):
    __tablename__ = "orders"

    order_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="draft")
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    order_date = Column(DateTime(timezone=True), nullable=True)
    delivery_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)

    __table_args__ = (
        Index("ix_orders_customer_status", "customer_id", "status"),
        Index("ix_orders_supplier_status", "supplier_id", "status"),
    )


class OrderItemRow(DatabaseModel):
    __tablename__ = "order_items"

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(14, 2), nullable=False)


class InventoryRow(DatabaseModel):
    __tablename__ = "inventory"

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    current_stock = Column(Integer, nullable=False, default=0)
    reserved_stock = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("product_id", "location_id", name="uq_inventory_product_location"),
    )


class InventoryTransactionRow(DatabaseModel):
    __tablename__ = "inventory_transactions"

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    transaction_type = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(12, 2), nullable=True)
    reference = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=False)
    created_date = Column(DateTime(timezone=True), nullable=True, index=True)

    __table_args__ = (
        Index("ix_inventory_transactions_product_location", "product_id", "location_id"),
    )


class InventoryMovementRow(DatabaseModel):
    __tablename__ = "inventory_movements"

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    from_location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    to_location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=False)
    created_date = Column(DateTime(timezone=True), nullable=True)


# ==================== DATABASE ENGINE FACTORY ====================

class DatabaseEngineFactory:
    """
    Factory class for creating SQLAlchemy database engines with proper configuration.
    """

    @staticmethod
    def create_engine(settings: DatabaseSettings, echo: bool = False, **kwargs) -> Engine:
        """
        Create a SQLAlchemy engine based on database settings.

        Args:
            settings: Database configuration settings
            echo: Whether to echo SQL statements
            **kwargs: Additional engine configuration options

        Returns:
            Configured SQLAlchemy Engine instance
        """
        connection_url = settings.get_connection_url()
        engine_kwargs = DatabaseEngineFactory._build_engine_kwargs(settings, echo, **kwargs)

        logger.info(f"Creating {settings.engine.value} database engine")
        logger.debug(f"Connection URL: {DatabaseEngineFactory._mask_password(connection_url)}")

        engine = create_engine(connection_url, **engine_kwargs)
        DatabaseEngineFactory._setup_event_listeners(engine, settings)
        return engine

    @staticmethod
    def _build_engine_kwargs(settings: DatabaseSettings, echo: bool = False, **extra_kwargs) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            'echo': echo or settings.echo_queries,
            'connect_args': {}
        }

        if settings.engine == DatabaseEngine.SQLITE:
            kwargs['connect_args']['check_same_thread'] = False
            kwargs['connect_args']['timeout'] = settings.connect_timeout
            if settings.is_memory_database:
                # One shared connection keeps the in-memory database alive
                kwargs['poolclass'] = StaticPool
        else:
            kwargs.update({
                'pool_size': settings.pool_size,
                'max_overflow': settings.max_overflow,
                'pool_timeout': settings.pool_timeout,
                'pool_recycle': settings.pool_recycle,
                'pool_pre_ping': settings.pool_pre_ping,
                'poolclass': QueuePool
            })
            kwargs['connect_args']['connect_timeout'] = settings.connect_timeout

        kwargs.update(extra_kwargs)
        return kwargs

    @staticmethod
    def _setup_event_listeners(engine: Engine, settings: DatabaseSettings) -> None:
        if settings.engine == DatabaseEngine.SQLITE:
            @event.listens_for(engine, "connect")
            def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        @event.listens_for(engine, "handle_error")
        def receive_handle_error(exception_context):
            logger.debug(f"Database error: {exception_context.original_exception}")

    @staticmethod
    def _mask_password(connection_url: str) -> str:
        return re.sub(r'://([^:]+):([^@]+)@', r'://\1:****@', connection_url)


# ==================== SESSION MANAGEMENT ====================

class SessionManager:
    """
    Manages SQLAlchemy database sessions with proper lifecycle management.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        logger.info("Database session manager initialized")

    def create_session(self) -> Session:
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Yields:
            Database session with automatic transaction management

        Example:
            with session_manager.session_scope() as session:
                session.add(ProductRow(name="Widget", sku="X1", created_by=7))
                # Transaction is automatically committed or rolled back
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Session rolled back due to error: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        """
        Perform a basic health check on the database connection.

        Returns:
            True if database is accessible, False otherwise
        """
        try:
            with self.session_scope() as session:
                session.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False


# ==================== DATABASE MANAGER ====================

class DatabaseManager:
    """
    Coordinates engine creation and session management.
    """

    def __init__(self, settings: DatabaseSettings, engine: Optional[Engine] = None):
        """
        Initialize the database manager.

        Args:
            settings: Database configuration settings
            engine: Pre-built engine to use instead of creating one
        """
        self.settings = settings
        self.engine: Optional[Engine] = engine
        self.session_manager: Optional[SessionManager] = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """
        Initialize the database connection and session manager.

        Raises:
            DatabaseError: If initialization fails
        """
        if self._initialized:
            logger.warning("Database manager already initialized")
            return

        try:
            if self.settings.engine == DatabaseEngine.SQLITE and not self.settings.is_memory_database:
                Path(self.settings.sqlite_file).parent.mkdir(parents=True, exist_ok=True)

            if self.engine is None:
                self.engine = DatabaseEngineFactory.create_engine(self.settings, echo=self.settings.echo_queries)

            self.session_manager = SessionManager(self.engine)

            if not self.session_manager.health_check():
                raise ConnectionError("Initial database health check failed")

            self._initialized = True
            logger.info("Database manager initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database manager: {e}")
            raise DatabaseError(f"Database initialization failed: {e}") from e

    def close(self) -> None:
        """Close database connections and cleanup resources."""
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database engine disposed")
        self._initialized = False

    def get_session(self) -> Session:
        if not self._initialized:
            raise RuntimeError("Database manager not initialized")
        return self.session_manager.create_session()

    @contextmanager
    def get_session_context(self) -> Generator[Session, None, None]:
        """
        Get a database session with context management.

        Yields:
            Database session with automatic cleanup
        """
        if not self._initialized:
            raise RuntimeError("Database manager not initialized")

        with self.session_manager.session_scope() as session:
            yield session

    def get_database_info(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            'engine': self.settings.engine.value,
            'url': DatabaseEngineFactory._mask_password(self.settings.get_connection_url()),
            'initialized': self._initialized,
        }
        if self.engine is not None:
            info['tables'] = sorted(inspect(self.engine).get_table_names())
        return info

    def __enter__(self):
        if not self._initialized:
            self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# ==================== DATABASE INITIALIZATION ====================

def init_database(settings: DatabaseSettings, create_tables: bool = True,
                  engine: Optional[Engine] = None) -> DatabaseManager:
    """
    Initialize database with proper configuration and optionally create tables.

    Args:
        settings: Database configuration settings
        create_tables: Whether to create database tables
        engine: Pre-built engine to use instead of creating one

    Returns:
        Initialized DatabaseManager instance
    """
    logger.info("Initializing database...")

    db_manager = DatabaseManager(settings, engine=engine)
    db_manager.initialize()

    if create_tables:
        create_database_tables(db_manager.engine)

    logger.info("Database initialization completed successfully")
    return db_manager


def create_database_tables(engine: Engine) -> None:
    """
    Create all database tables defined in the metadata.

    Raises:
        DatabaseError: If table creation fails
    """
    try:
        metadata.create_all(engine)
        table_names = inspect(engine).get_table_names()
        logger.info(f"Database has {len(table_names)} tables: {', '.join(sorted(table_names))}")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabaseError(f"Table creation failed: {e}") from e


def drop_database_tables(engine: Engine) -> None:
    """Drop all database tables defined in the metadata."""
    logger.warning("Dropping all database tables...")
    metadata.drop_all(engine)
    logger.warning("All database tables dropped")


# ==================== CUSTOM EXCEPTIONS ====================

class DatabaseError(Exception):
    """Base exception for database operations."""
    pass


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""
    pass
