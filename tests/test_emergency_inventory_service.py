"""Tests for the emergency inventory watch-list."""

from decimal import Decimal

import pytest

from storefront.data.models import ProductModel
from storefront.domain.errors import NotFoundError
from storefront.services.emergency_inventory_service import EmergencyInventoryService
from storefront.tasks.emergency_audit import run_emergency_audit

from conftest import TENANT_ID


@pytest.fixture
def service(db):
    return EmergencyInventoryService(db)


@pytest.fixture
def losing_product(db, tenant):
    product = ProductModel(
        tenant_id=tenant.id, name="Premium Card", sku="PC-1",
        price=Decimal("50.00"), cost_per_item=Decimal("55.00"), stock_count=3,
    )
    db.add(product)
    db.commit()
    return product


@pytest.fixture
def needed_product(db, tenant):
    product = ProductModel(
        tenant_id=tenant.id, name="Mug", sku="MUG-1",
        price=Decimal("12.00"), stock_count=0, is_needed=True,
    )
    db.add(product)
    db.commit()
    return product


class TestUpsert:
    def test_creates_entry(self, service, physical_product):
        count = service.upsert_emergency_items(
            TENANT_ID, [{"product_id": physical_product.id, "reason": "manual", "notes": "check supplier"}]
        )

        assert count == 1
        entry = service.list_items(TENANT_ID)["data"][0]
        assert entry.reason == "manual"
        assert entry.notes == "check supplier"

    def test_second_upsert_updates_reason_and_appends_notes(self, service, physical_product):
        service.upsert_emergency_items(TENANT_ID, [{"product_id": physical_product.id, "notes": "first"}])
        service.upsert_emergency_items(
            TENANT_ID, [{"product_id": physical_product.id, "reason": "needed", "notes": "second"}]
        )

        listing = service.list_items(TENANT_ID)
        assert listing["total"] == 1
        assert listing["data"][0].reason == "needed"
        assert listing["data"][0].notes == "first\nsecond"

    def test_unknown_reason_rejected(self, service, physical_product):
        with pytest.raises(ValueError):
            service.upsert_emergency_items(TENANT_ID, [{"product_id": physical_product.id, "reason": "lost"}])


class TestListAndRemove:
    def test_search_by_name_or_sku(self, service, physical_product, digital_product):
        service.upsert_emergency_items(
            TENANT_ID, [{"product_id": physical_product.id}, {"product_id": digital_product.id}]
        )

        assert service.list_items(TENANT_ID)["total"] == 2
        by_name = service.list_items(TENANT_ID, search="shirt")
        assert [e.product_id for e in by_name["data"]] == [physical_product.id]
        by_sku = service.list_items(TENANT_ID, search="gc-")
        assert [e.product_id for e in by_sku["data"]] == [digital_product.id]

    def test_entries_are_per_tenant(self, service, physical_product):
        service.upsert_emergency_items(TENANT_ID, [{"product_id": physical_product.id}])

        assert service.list_items("tenant-2")["total"] == 0

    def test_remove(self, service, physical_product):
        service.upsert_emergency_items(TENANT_ID, [{"product_id": physical_product.id}])

        service.remove_item(TENANT_ID, physical_product.id)

        assert service.list_items(TENANT_ID)["total"] == 0

    def test_remove_missing_entry(self, service, physical_product):
        with pytest.raises(NotFoundError):
            service.remove_item(TENANT_ID, physical_product.id)


class TestAutoAdd:
    def test_cost_above_price_flagged(self, service, losing_product, digital_product):
        assert service.auto_add_cost_gt_price(TENANT_ID) == 1

        entry = service.list_items(TENANT_ID)["data"][0]
        assert entry.product_id == losing_product.id
        assert entry.reason == "cost_gt_price"
        assert "55.00" in entry.notes

    def test_needed_products_added_once(self, service, needed_product):
        assert service.auto_add_needed(TENANT_ID) == 1
        assert service.auto_add_needed(TENANT_ID) == 0

    def test_audit_sums_over_tenants(self, service, losing_product, needed_product):
        totals = run_emergency_audit(service, [TENANT_ID, "tenant-2"])

        assert totals == {"tenants": 2, "cost_gt_price": 1, "needed": 1}
