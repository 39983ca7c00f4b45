# tests/test_services.py
"""
Entity Service Tests
====================

Write-through behaviour of the services wired by StockERPApplication: the
cache and the database must agree after every successful write, and the
cache must be untouched when a write fails.
"""

import pytest
from sqlalchemy.exc import OperationalError

from stockerp.core import ErrorCode
from stockerp.models import OrderStatus, ProductCreate

from .conftest import customer_payload, make_product, product_payload, supplier_payload, user_payload


def store_failure(*args, **kwargs):
    raise OperationalError("INSERT INTO products ...", {}, Exception("database is locked"))


@pytest.mark.integration
class TestProductScenarios:
    """End-to-end product lifecycle through the facade."""

    @pytest.mark.asyncio
    async def test_created_product_is_readable_by_id_and_sku(self, application):
        products = application.products

        created = await products.create(product_payload())

        assert created.is_success()
        product = created.data
        assert product.id > 0
        assert (await products.get_by_id(product.id)).data == product
        assert (await products.get_by_sku("X1")).data == product
        assert (await products.get_by_sku("x1")).data == product

    @pytest.mark.asyncio
    async def test_duplicate_sku_is_rejected(self, application):
        products = application.products
        await products.create(product_payload())

        result = await products.create(product_payload(name="Another"))

        assert result.error_code == ErrorCode.DUPLICATE_KEY
        assert result.error_message == "A product with SKU 'X1' already exists."
        assert products.cache.count() == 1

    @pytest.mark.asyncio
    async def test_non_ascii_sku_duplicate_is_caught_by_the_store(self, application):
        products = application.products
        await products.create(product_payload(sku="ÄRM-1"))
        application.product_cache.clear()

        result = await products.create(product_payload(name="Another", sku="ärm-1"))

        assert result.error_code == ErrorCode.DUPLICATE_KEY
        assert [p.sku for p in (await products.get_all_active()).data] == ["ÄRM-1"]

    @pytest.mark.asyncio
    async def test_soft_deleted_product_disappears_until_restored(self, application):
        products = application.products
        product = (await products.create(product_payload())).data

        assert (await products.soft_delete(product.id)).is_success()

        missing = await products.get_by_id(product.id)
        assert missing.error_code == ErrorCode.NOT_FOUND
        assert missing.error_message == f"Product with ID {product.id} not found."
        assert products.cache.get_by_key("X1") is None

        restored = await products.restore(product.id)

        assert restored.is_success()
        assert restored.data.name == "Widget"
        assert (await products.get_by_id(product.id)).data.name == "Widget"
        assert products.cache.get_by_key("X1").id == product.id

    @pytest.mark.asyncio
    async def test_bulk_soft_delete_reports_partial_failure(self, application):
        products = application.products
        product = (await products.create(product_payload())).data

        result = await products.bulk_soft_delete([product.id, 9999])

        assert result.error_code == ErrorCode.PARTIAL_FAILURE
        assert "Product 9999" in result.error_message
        assert result.metadata["succeeded"] == [product.id]
        assert result.metadata["failed_count"] == 1
        assert (await products.get_by_id(product.id)).error_code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_bulk_restore_counts_successes(self, application):
        products = application.products
        first = (await products.create(product_payload(sku="A"))).data
        second = (await products.create(product_payload(sku="B"))).data
        await products.bulk_soft_delete([first.id, second.id])

        result = await products.bulk_restore([first.id, second.id])

        assert result.is_success()
        assert result.data == 2
        assert products.cache.ids() == [first.id, second.id]


class TestWriteThrough:
    @pytest.mark.asyncio
    async def test_update_changes_cache_and_database(self, application):
        products = application.products
        product = (await products.create(product_payload())).data

        updated = await products.update({"id": product.id, "name": "Gadget", "sku": "X2", "price": "12.00"})

        assert updated.is_success()
        assert products.cache.get_by_id(product.id).name == "Gadget"
        assert products.cache.get_by_key("X1") is None
        assert products.cache.get_by_key("X2").id == product.id
        stored = await products.writer.repository.get_by_id(product.id)
        assert stored.name == "Gadget"
        assert stored.created_by == product.created_by

    @pytest.mark.asyncio
    async def test_update_to_taken_sku_leaves_both_sides_untouched(self, application):
        products = application.products
        await products.create(product_payload(sku="A"))
        second = (await products.create(product_payload(sku="B"))).data

        result = await products.update({"id": second.id, "name": "Widget", "sku": "a"})

        assert result.error_code == ErrorCode.DUPLICATE_KEY
        assert products.cache.get_by_id(second.id).sku == "B"
        assert (await products.writer.repository.get_by_id(second.id)).sku == "B"

    @pytest.mark.asyncio
    async def test_failed_store_create_leaves_cache_alone(self, application, monkeypatch):
        products = application.products
        monkeypatch.setattr(products.writer.repository, "create", store_failure)

        result = await products.create(product_payload())

        assert result.error_code == ErrorCode.CONNECTION_FAILURE
        assert products.cache.count() == 0

    @pytest.mark.asyncio
    async def test_failed_store_update_leaves_cache_alone(self, application, monkeypatch):
        products = application.products
        product = (await products.create(product_payload())).data
        monkeypatch.setattr(products.writer.repository, "update", store_failure)

        result = await products.update({"id": product.id, "name": "Gadget", "sku": "X1"})

        assert result.is_error()
        assert result.metadata["operation"] == f"Update Product {product.id}"
        assert products.cache.get_by_id(product.id).name == "Widget"

    @pytest.mark.asyncio
    async def test_failed_store_soft_delete_keeps_record_cached(self, application, monkeypatch):
        products = application.products
        product = (await products.create(product_payload())).data
        monkeypatch.setattr(products.writer.repository, "soft_delete", store_failure)

        result = await products.soft_delete(product.id)

        assert result.is_error()
        assert products.cache.exists(product.id)

    @pytest.mark.asyncio
    async def test_hard_delete_from_either_state(self, application):
        products = application.products
        active = (await products.create(product_payload(sku="A"))).data
        deleted = (await products.create(product_payload(sku="B"))).data
        await products.soft_delete(deleted.id)

        assert (await products.hard_delete(active.id)).is_success()
        assert (await products.hard_delete(deleted.id)).is_success()

        assert products.cache.count() == 0
        assert (await products.get_total_count()).data == 0
        assert (await products.hard_delete(active.id)).error_code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_typed_input_model_is_accepted(self, application):
        payload = ProductCreate(name="Widget", sku="X1", created_by=7)

        result = await application.products.create(payload)

        assert result.is_success()


class TestValidation:
    @pytest.mark.asyncio
    async def test_invalid_payload_is_reported_as_invalid_input(self, application):
        result = await application.products.create(product_payload(name="", price="-1"))

        assert result.error_code == ErrorCode.INVALID_INPUT
        assert result.error_message.startswith("Validation failed:")
        assert "name" in result.error_message
        assert "price" in result.error_message

    @pytest.mark.asyncio
    async def test_missing_required_field_is_invalid_input(self, application):
        result = await application.products.create({"name": "Widget", "created_by": 7})

        assert result.error_code == ErrorCode.INVALID_INPUT
        assert result.error_message == "Validation failed: sku: Field required"

    @pytest.mark.asyncio
    async def test_unknown_payload_fields_are_rejected(self, application):
        result = await application.customers.create(customer_payload(colour="red"))

        assert result.error_code == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_non_positive_ids_are_invalid_input(self, application):
        products = application.products

        assert (await products.get_by_id(0)).error_code == ErrorCode.INVALID_INPUT
        assert (await products.soft_delete(-1)).error_code == ErrorCode.INVALID_INPUT
        assert (await products.restore(0)).error_code == ErrorCode.INVALID_INPUT
        result = await products.update({"id": 0, "name": "Widget", "sku": "X1"})
        assert result.error_message == "Product ID must be a positive integer."

    @pytest.mark.asyncio
    async def test_update_of_deleted_record_is_not_found(self, application):
        products = application.products
        product = (await products.create(product_payload())).data
        await products.soft_delete(product.id)

        result = await products.update({"id": product.id, "name": "Gadget", "sku": "X1"})

        assert result.error_code == ErrorCode.NOT_FOUND
        assert "Restore the product first" in result.error_message

    @pytest.mark.asyncio
    async def test_soft_delete_twice_is_not_found(self, application):
        products = application.products
        product = (await products.create(product_payload())).data
        await products.soft_delete(product.id)

        result = await products.soft_delete(product.id)

        assert result.error_code == ErrorCode.NOT_FOUND
        assert result.error_message == f"Product with ID {product.id} not found or already deleted."

    @pytest.mark.asyncio
    async def test_restore_of_active_record_is_invalid(self, application):
        products = application.products
        product = (await products.create(product_payload())).data

        result = await products.restore(product.id)

        assert result.error_code == ErrorCode.INVALID_INPUT
        assert result.error_message == f"Product with ID {product.id} is not deleted and cannot be restored."

    @pytest.mark.asyncio
    async def test_restore_rechecks_keys(self, application):
        products = application.products
        original = (await products.create(product_payload())).data
        await products.soft_delete(original.id)
        await products.create(product_payload(name="Replacement"))

        result = await products.restore(original.id)

        assert result.error_code == ErrorCode.DUPLICATE_KEY
        assert products.cache.get_by_key("X1").name == "Replacement"

    @pytest.mark.asyncio
    async def test_missing_reference_is_not_found(self, application):
        result = await application.products.create(product_payload(category_id=999))

        assert result.error_code == ErrorCode.NOT_FOUND
        assert result.error_message == "Category with ID 999 not found."

    @pytest.mark.asyncio
    async def test_deleted_reference_is_not_found(self, application):
        supplier = (await application.suppliers.create(supplier_payload())).data
        await application.suppliers.soft_delete(supplier.id)

        result = await application.products.create(product_payload(supplier_id=supplier.id))

        assert result.error_code == ErrorCode.NOT_FOUND


class TestBusinessRules:
    """Deletion rules registered by the application."""

    @pytest.mark.asyncio
    async def test_customer_with_open_order_cannot_be_deleted(self, application):
        customer = (await application.customers.create(customer_payload())).data
        order = (await application.orders.create(
            {"order_type": "sale", "customer_id": customer.id, "created_by": 7}
        )).data

        blocked = await application.customers.soft_delete(customer.id)

        assert blocked.error_code == ErrorCode.CONSTRAINT_VIOLATION
        assert blocked.error_message == (
            f"Cannot delete customer with ID {customer.id} because they have active orders. "
            f"Complete or cancel orders first."
        )
        assert application.customers.cache.exists(customer.id)

        await application.orders.update_status(order.id, OrderStatus.CANCELLED)

        assert (await application.customers.soft_delete(customer.id)).is_success()

    @pytest.mark.asyncio
    async def test_category_with_subcategories_cannot_be_deleted(self, application):
        categories = application.categories
        parent = (await categories.create({"name": "Hardware"})).data
        await categories.create({"name": "Screws", "parent_category_id": parent.id})

        result = await categories.soft_delete(parent.id)

        assert result.error_code == ErrorCode.CONSTRAINT_VIOLATION
        assert "subcategories" in result.error_message

    @pytest.mark.asyncio
    async def test_category_cannot_move_under_its_descendant(self, application):
        categories = application.categories
        root = (await categories.create({"name": "Hardware"})).data
        child = (await categories.create({"name": "Screws", "parent_category_id": root.id})).data
        grandchild = (await categories.create({"name": "Wood Screws", "parent_category_id": child.id})).data

        for descendant in (child, grandchild):
            result = await categories.update({"id": root.id, "name": "Hardware", "parent_category_id": descendant.id})

            assert result.error_code == ErrorCode.INVALID_INPUT
            assert result.error_message == "A category cannot be moved under itself or one of its own subcategories."
        assert application.category_cache.get_by_id(root.id).parent_category_id is None

    @pytest.mark.asyncio
    async def test_category_cannot_be_its_own_parent(self, application):
        category = (await application.categories.create({"name": "Hardware"})).data

        result = await application.categories.update(
            {"id": category.id, "name": "Hardware", "parent_category_id": category.id}
        )

        assert result.error_code == ErrorCode.INVALID_INPUT
        assert "A category cannot be its own parent" in result.error_message

    @pytest.mark.asyncio
    async def test_cycle_check_reads_uncached_ancestors(self, application):
        categories = application.categories
        root = (await categories.create({"name": "Hardware"})).data
        child = (await categories.create({"name": "Screws", "parent_category_id": root.id})).data
        leaf = (await categories.create({"name": "Wood Screws", "parent_category_id": child.id})).data
        application.category_cache.delete(child.id)

        result = await categories.update({"id": root.id, "name": "Hardware", "parent_category_id": leaf.id})

        assert result.error_code == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_category_can_move_to_an_unrelated_branch(self, application):
        categories = application.categories
        tools = (await categories.create({"name": "Tools"})).data
        screws = (await categories.create({"name": "Screws"})).data

        result = await categories.update({"id": screws.id, "name": "Screws", "parent_category_id": tools.id})

        assert result.is_success()
        assert result.data.parent_category_id == tools.id

    @pytest.mark.asyncio
    async def test_category_with_products_cannot_be_deleted(self, application):
        category = (await application.categories.create({"name": "Hardware"})).data
        await application.products.create(product_payload(category_id=category.id))

        result = await application.categories.hard_delete(category.id)

        assert result.error_code == ErrorCode.CONSTRAINT_VIOLATION

    @pytest.mark.asyncio
    async def test_supplier_with_products_cannot_be_hard_deleted(self, application):
        supplier = (await application.suppliers.create(supplier_payload())).data
        await application.products.create(product_payload(supplier_id=supplier.id))

        assert (await application.suppliers.hard_delete(supplier.id)).error_code == ErrorCode.CONSTRAINT_VIOLATION
        assert (await application.suppliers.soft_delete(supplier.id)).is_success()


class TestUsers:
    @pytest.mark.asyncio
    async def test_password_is_hashed(self, application):
        result = await application.users.create(user_payload())

        user = result.data
        assert user.password_hash != "secret123"
        assert application.password_manager.verify_password("secret123", user.password_hash)
        assert "password_hash" not in user.to_dict()
        assert (await application.users.get_by_username("JDOE")).data.id == user.id

    @pytest.mark.asyncio
    async def test_weak_password_is_rejected(self, application):
        result = await application.users.create(user_payload(password="onlyletters"))

        assert result.error_code == ErrorCode.INVALID_INPUT
        assert application.users.cache.count() == 0

    @pytest.mark.asyncio
    async def test_change_password(self, application):
        users = application.users
        user = (await users.create(user_payload())).data

        wrong = await users.change_password(
            {"user_id": user.id, "current_password": "not-it-123", "new_password": "newsecret1"}
        )
        assert wrong.error_code == ErrorCode.INVALID_INPUT
        assert wrong.error_message == "Current password is incorrect."

        changed = await users.change_password(
            {"user_id": user.id, "current_password": "secret123", "new_password": "newsecret1"}
        )
        assert changed.is_success()

        cached = users.cache.get_by_id(user.id)
        assert application.password_manager.verify_password("newsecret1", cached.password_hash)
        stored = await users.writer.repository.get_by_id(user.id)
        assert stored.password_hash == cached.password_hash


class TestReads:
    @pytest.mark.asyncio
    async def test_cache_miss_reads_store_without_caching(self, application):
        products = application.products
        raw = await products.writer.repository.create(make_product(sku="RAW"))

        result = await products.get_by_id(raw.id)

        assert result.data.sku == "RAW"
        assert not products.cache.exists(raw.id)

    @pytest.mark.asyncio
    async def test_get_all_active_rewarms_cache(self, application):
        products = application.products
        raw = await products.writer.repository.create(make_product(sku="RAW"))

        result = await products.get_all_active()

        assert [p.id for p in result.data] == [raw.id]
        assert products.cache.get_by_key("raw").id == raw.id

    @pytest.mark.asyncio
    async def test_search_runs_against_cache(self, application):
        products = application.products
        await products.create(product_payload(name="Blue Widget", sku="BW"))
        await products.create(product_payload(name="Gadget", sku="G"))

        assert [p.sku for p in (await products.search("widget")).data] == ["BW"]
        assert (await products.search(colour="red")).error_code == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_paging_rejects_bad_values(self, application):
        result = await application.products.get_paged(0, 10)

        assert result.error_code == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_counts(self, application):
        products = application.products
        keep = (await products.create(product_payload(sku="A"))).data
        drop = (await products.create(product_payload(sku="B"))).data
        await products.soft_delete(drop.id)

        assert (await products.get_total_count()).data == 2
        assert (await products.get_active_count()).data == 1
        assert (await products.get_deleted_count()).data == 1
        assert [p.id for p in (await products.get_all_deleted()).data] == [drop.id]
        assert (await products.exists(keep.id)).data is True
        assert (await products.is_key_available("sku", "b")).data is True
        assert (await products.is_key_available("sku", "a")).data is False


class TestEvents:
    @pytest.mark.asyncio
    async def test_lifecycle_events_are_dispatched(self, application, recorded_events):
        products = application.products
        product = (await products.create(product_payload())).data
        await products.update({"id": product.id, "name": "Gadget", "sku": "X1"})
        await products.soft_delete(product.id)
        await products.restore(product.id)
        await products.hard_delete(product.id)

        assert recorded_events.types() == [
            "EntityCreatedEvent",
            "EntityUpdatedEvent",
            "EntityDeletedEvent",
            "EntityRestoredEvent",
            "EntityDeletedEvent",
        ]
        updated = recorded_events.events[1]
        assert updated.changes["name"] == ("Widget", "Gadget")
        assert recorded_events.events[-1].hard is True

    @pytest.mark.asyncio
    async def test_failed_writes_dispatch_nothing(self, application, recorded_events):
        await application.products.create(product_payload(name=""))
        await application.products.soft_delete(42)

        assert recorded_events.events == []


class TestApplication:
    @pytest.mark.asyncio
    async def test_warm_caches_loads_every_entity(self, application):
        await application.products.writer.repository.create(make_product(sku="RAW"))

        counts = await application.warm_caches()

        assert counts["products"] == 1
        assert counts["orders"] == 0
        assert set(counts) == set(application.services)

    @pytest.mark.asyncio
    async def test_background_refresh_swaps_in_store_state(self, application):
        raw = await application.products.writer.repository.create(make_product(sku="RAW"))

        await application.products.refresh_cache()

        assert application.products.cache.exists(raw.id)

    @pytest.mark.asyncio
    async def test_health_status(self, application):
        await application.products.create(product_payload())

        health = await application.get_health_status()

        assert health["status"] == "healthy"
        assert health["database"] == "ok"
        assert health["caches"]["products"] == 1

    @pytest.mark.asyncio
    async def test_cache_statistics(self, application):
        stats = application.get_cache_statistics()

        assert stats["products"]["entity"] == "Product"
        assert stats["products"]["warm"] is True
