"""
StockERP API Module - FastAPI REST API Implementation
Version: 1.0.0
Author: StockERP Development Team
License: MIT

HTTP surface over the entity facades. Every entity gets the same set of
routes from ``build_entity_router``; orders, users and inventory add a few of their
own. Responses are wrapped in the ``APIResponse`` envelope and service
error codes are mapped onto HTTP status codes.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .application import StockERPApplication
from .config import AppSettings, ConfigurationManager, configure_logging
from .core import ErrorCode, PaginatedResult, ServiceResult
from .facades import EntityService
from .models import (
    CategoryCreate, ChangePassword, CustomerCreate, InputModel, InventoryCreate, LocationCreate,
    OrderCreate, OrderItemCreate, OrderStatus, ProductCreate, StockTransfer, SupplierCreate,
    TransactionCreate, TransactionType, UserCreate
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ==================== RESPONSE MODELS ====================

class APIResponse(BaseModel, Generic[T]):
    """Generic API response wrapper."""

    success: bool = Field(..., description="Whether the operation was successful")
    data: Optional[T] = Field(None, description="Response data")
    message: Optional[str] = Field(None, description="Response message")
    error_code: Optional[str] = Field(None, description="Error code if operation failed")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Additional metadata")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def success_response(
        cls,
        data: Optional[T] = None,
        message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> 'APIResponse[T]':
        return cls(success=True, data=data, message=message, metadata=metadata)

    @classmethod
    def error_response(
        cls,
        message: str,
        error_code: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> 'APIResponse[T]':
        return cls(success=False, message=message, error_code=error_code, metadata=metadata)


class BulkOperationRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1, description="Entity ids to process")


class StatusUpdateRequest(BaseModel):
    status: OrderStatus


ERROR_STATUS_CODES: Dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.DUPLICATE_KEY: status.HTTP_409_CONFLICT,
    ErrorCode.CONSTRAINT_VIOLATION: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.VALIDATION_FAILURE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.PARTIAL_FAILURE: status.HTTP_207_MULTI_STATUS,
}


def status_for(error_code: ErrorCode) -> int:
    return ERROR_STATUS_CODES.get(error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def _serialize(data: Any) -> Any:
    if isinstance(data, PaginatedResult):
        return data.to_dict()
    if isinstance(data, (list, tuple)):
        return [_serialize(item) for item in data]
    if hasattr(data, 'to_dict'):
        return data.to_dict()
    return data


def to_response(result: ServiceResult, success_status: int = status.HTTP_200_OK,
                message: Optional[str] = None) -> JSONResponse:
    """Render a ServiceResult as an enveloped JSON response."""
    if result.is_success():
        envelope = APIResponse.success_response(
            data=_serialize(result.data), message=message, metadata=result.metadata or None
        )
        return JSONResponse(status_code=success_status, content=jsonable_encoder(envelope))

    metadata = {key: value for key, value in result.metadata.items() if key != 'detail'} or None
    envelope = APIResponse.error_response(result.error_message, result.error_code.value, metadata)
    return JSONResponse(status_code=status_for(result.error_code), content=jsonable_encoder(envelope))


# ==================== EXCEPTION HANDLERS ====================

async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"][1:]) or None,
            "message": error["msg"],
            "code": error["type"],
        }
        for error in exc.errors()
    ]
    envelope = APIResponse.error_response(
        "Validation failed", ErrorCode.INVALID_INPUT.value, metadata={"errors": errors}
    )
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=jsonable_encoder(envelope))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    envelope = APIResponse.error_response("Internal server error", ErrorCode.UNEXPECTED_ERROR.value)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=jsonable_encoder(envelope))


# ==================== DEPENDENCIES ====================

def get_application(request: Request) -> StockERPApplication:
    return request.app.state.application


def service_dependency(resource: str) -> Callable[[Request], EntityService]:
    def get_service(request: Request) -> EntityService:
        return get_application(request).services[resource]
    return get_service


# ==================== ROUTERS ====================

def build_entity_router(
    resource: str,
    create_model: Type[InputModel],
    unique_keys: tuple = (),
    extend: Optional[Callable[[APIRouter, Callable[[Request], EntityService]], None]] = None
) -> APIRouter:
    """
    Build the standard CRUD router for one entity.

    Args:
        resource: Plural resource name, used as the path prefix and service key
        create_model: Pydantic model accepted by POST
        unique_keys: Secondary keys exposed as ``/by-<key>/{value}`` lookups
        extend: Hook adding entity-specific routes; it runs before the
            ``/{entity_id}`` routes so static paths take precedence
    """
    router = APIRouter(prefix=f"/{resource}", tags=[resource.replace("_", " ").title()])
    get_service = service_dependency(resource)

    @router.get("", summary=f"List active {resource}")
    async def list_active(service: EntityService = Depends(get_service)):
        return to_response(await service.get_all_active())

    @router.get("/deleted", summary=f"List soft-deleted {resource}")
    async def list_deleted(service: EntityService = Depends(get_service)):
        return to_response(await service.get_all_deleted())

    @router.get("/page", summary=f"Page through {resource}")
    async def get_page(
        page: int = Query(1),
        page_size: int = Query(50),
        include_deleted: bool = Query(False),
        service: EntityService = Depends(get_service)
    ):
        return to_response(await service.get_paged(page, page_size, include_deleted))

    @router.get("/search", summary=f"Search active {resource}")
    async def search(term: Optional[str] = Query(None), service: EntityService = Depends(get_service)):
        return to_response(await service.search(term))

    @router.get("/count", summary=f"Count {resource}")
    async def count(
        scope: str = Query("active", pattern="^(active|total|deleted)$"),
        service: EntityService = Depends(get_service)
    ):
        if scope == "total":
            return to_response(await service.get_total_count())
        if scope == "deleted":
            return to_response(await service.get_deleted_count())
        return to_response(await service.get_active_count())

    for key_name in unique_keys:
        def add_key_route(key_name: str) -> None:
            @router.get(f"/by-{key_name.replace('_', '-')}/{{value}}", summary=f"Get by {key_name}")
            async def get_by_key(value: str, service: EntityService = Depends(get_service)):
                return to_response(await service.get_by_key(value, key_name))
        add_key_route(key_name)

    @router.post("", status_code=status.HTTP_201_CREATED, summary=f"Create one of {resource}")
    async def create(payload: create_model, service: EntityService = Depends(get_service)):
        return to_response(await service.create(payload), status.HTTP_201_CREATED)

    @router.post("/bulk-delete", summary=f"Soft delete several {resource}")
    async def bulk_delete(payload: BulkOperationRequest, service: EntityService = Depends(get_service)):
        return to_response(await service.bulk_soft_delete(payload.ids))

    @router.post("/bulk-restore", summary=f"Restore several {resource}")
    async def bulk_restore(payload: BulkOperationRequest, service: EntityService = Depends(get_service)):
        return to_response(await service.bulk_restore(payload.ids))

    @router.post("/refresh-cache", status_code=status.HTTP_202_ACCEPTED, summary=f"Reload the {resource} cache")
    async def refresh_cache(service: EntityService = Depends(get_service)):
        service.refresh_cache()
        return to_response(
            ServiceResult.success_result(), status.HTTP_202_ACCEPTED, message="Cache refresh scheduled"
        )

    if extend is not None:
        extend(router, get_service)

    @router.get("/{entity_id}", summary=f"Get one of {resource} by id")
    async def get_by_id(entity_id: int, service: EntityService = Depends(get_service)):
        return to_response(await service.get_by_id(entity_id))

    @router.put("/{entity_id}", summary=f"Update one of {resource}")
    async def update(entity_id: int, payload: Dict[str, Any] = Body(...),
                     service: EntityService = Depends(get_service)):
        return to_response(await service.update({**payload, "id": entity_id}))

    @router.delete("/{entity_id}", summary=f"Soft delete one of {resource}")
    async def soft_delete(entity_id: int, service: EntityService = Depends(get_service)):
        return to_response(await service.soft_delete(entity_id))

    @router.delete("/{entity_id}/hard", summary=f"Permanently delete one of {resource}")
    async def hard_delete(entity_id: int, service: EntityService = Depends(get_service)):
        return to_response(await service.hard_delete(entity_id))

    @router.post("/{entity_id}/restore", summary=f"Restore one of {resource}")
    async def restore(entity_id: int, service: EntityService = Depends(get_service)):
        return to_response(await service.restore(entity_id))

    return router


def _order_routes(router: APIRouter, get_service: Callable[[Request], EntityService]) -> None:
    @router.get("/sales", summary="Sales order list")
    async def sales_list(service=Depends(get_service)):
        return to_response(await service.get_sales_list())

    @router.get("/purchases", summary="Purchase order list")
    async def purchase_list(service=Depends(get_service)):
        return to_response(await service.get_purchase_list())

    @router.get("/overdue", summary="Open orders past their delivery date")
    async def overdue(service=Depends(get_service)):
        return to_response(await service.get_overdue())

    @router.patch("/{entity_id}/status", summary="Change an order's status")
    async def update_status(entity_id: int, payload: StatusUpdateRequest, service=Depends(get_service)):
        return to_response(await service.update_status(entity_id, payload.status))


def _user_routes(router: APIRouter, get_service: Callable[[Request], EntityService]) -> None:
    @router.post("/change-password", summary="Change a user's password")
    async def change_password(payload: ChangePassword, service=Depends(get_service)):
        return to_response(await service.change_password(payload), message="Password changed")


def _order_item_routes(router: APIRouter, get_service: Callable[[Request], EntityService]) -> None:
    @router.get("/by-order/{order_id}", summary="Items of one order")
    async def by_order(order_id: int, service=Depends(get_service)):
        return to_response(await service.get_by_order(order_id))



def _inventory_routes(router: APIRouter, get_service: Callable[[Request], EntityService]) -> None:
    @router.get("/by-product/{product_id}", summary="Stock of one product at every location")
    async def by_product(product_id: int, service=Depends(get_service)):
        return to_response(await service.get_by_product(product_id))

    @router.get("/by-location/{location_id}", summary="Stock held at one location")
    async def by_location(location_id: int, service=Depends(get_service)):
        return to_response(await service.get_by_location(location_id))

    @router.get("/low-stock", summary="Inventory with little available stock")
    async def low_stock(threshold: int = Query(10), service=Depends(get_service)):
        return to_response(await service.get_low_stock(threshold))

    @router.get("/out-of-stock", summary="Inventory with no available stock")
    async def out_of_stock(service=Depends(get_service)):
        return to_response(await service.get_out_of_stock())

    @router.get("/low-stock-products", summary="Products at or below their minimum stock level")
    async def low_stock_products(service=Depends(get_service)):
        return to_response(await service.get_low_stock_products())

    @router.get("/transactions", summary="Inventory transaction ledger")
    async def transactions(
        product_id: Optional[int] = Query(None),
        location_id: Optional[int] = Query(None),
        transaction_type: Optional[TransactionType] = Query(None),
        service=Depends(get_service)
    ):
        return to_response(await service.get_transactions(product_id, location_id, transaction_type))

    @router.post("/transactions", status_code=status.HTTP_201_CREATED, summary="Record an inventory transaction")
    async def record_transaction(payload: TransactionCreate, service=Depends(get_service)):
        return to_response(await service.record_transaction(payload), status.HTTP_201_CREATED)

    @router.get("/movements", summary="Stock transfers between locations")
    async def movements(
        product_id: Optional[int] = Query(None),
        location_id: Optional[int] = Query(None),
        service=Depends(get_service)
    ):
        return to_response(await service.get_movements(product_id, location_id))

    @router.post("/transfer", status_code=status.HTTP_201_CREATED, summary="Transfer stock between locations")
    async def transfer(payload: StockTransfer, service=Depends(get_service)):
        return to_response(await service.transfer_stock(payload), status.HTTP_201_CREATED)

    @router.post("/{entity_id}/adjust", summary="Adjust the stock level")
    async def adjust(entity_id: int, payload: Dict[str, Any] = Body(...), service=Depends(get_service)):
        return to_response(await service.adjust_stock({**payload, "inventory_id": entity_id}))

    @router.post("/{entity_id}/reserve", summary="Reserve available stock")
    async def reserve(entity_id: int, payload: Dict[str, Any] = Body(...), service=Depends(get_service)):
        return to_response(await service.reserve_stock({**payload, "inventory_id": entity_id}))

    @router.post("/{entity_id}/release", summary="Release reserved stock")
    async def release(entity_id: int, payload: Dict[str, Any] = Body(...), service=Depends(get_service)):
        return to_response(await service.release_reserved_stock({**payload, "inventory_id": entity_id}))


ENTITY_ROUTES = (
    ("products", ProductCreate, ("sku",), None),
    ("categories", CategoryCreate, ("name",), None),
    ("customers", CustomerCreate, ("email", "phone"), None),
    ("suppliers", SupplierCreate, ("email", "phone"), None),
    ("locations", LocationCreate, ("name",), None),
    ("users", UserCreate, ("username",), _user_routes),
    ("orders", OrderCreate, (), _order_routes),
    ("order_items", OrderItemCreate, (), _order_item_routes),
    ("inventory", InventoryCreate, (), _inventory_routes),
)


# ==================== APPLICATION FACTORY ====================

def create_app(settings: Optional[AppSettings] = None,
               application: Optional[StockERPApplication] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use; loaded from the configuration sources when omitted
        application: Pre-built application, for embedding and tests. The
            caller keeps ownership and is responsible for its cleanup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.application is None
        if owned:
            config = settings or ConfigurationManager().load_config()
            configure_logging(config.logging)
            app.state.application = StockERPApplication(config)

        logger.info("Starting StockERP API application...")
        await app.state.application.initialize()
        try:
            yield
        finally:
            logger.info("Shutting down StockERP API application...")
            if owned:
                await app.state.application.cleanup()
                app.state.application = None

    api_prefix = (settings or (application.settings if application else AppSettings())).api_prefix

    app = FastAPI(
        title="StockERP API",
        description="Inventory and order management REST API",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.application = application

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    @app.get("/", include_in_schema=False)
    async def root():
        return {"message": "StockERP API", "version": "1.0.0"}

    @app.get("/health", tags=["System"], summary="Health Check")
    async def health_check(request: Request):
        current = request.app.state.application
        if current is None:
            return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                                content={"status": "not_initialized"})
        health = await current.get_health_status()
        code = status.HTTP_200_OK if health.get('status') == 'healthy' else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(status_code=code, content=jsonable_encoder(health))

    for resource, create_model, keys, extend in ENTITY_ROUTES:
        app.include_router(build_entity_router(resource, create_model, keys, extend), prefix=api_prefix)

    return app


app = create_app()
