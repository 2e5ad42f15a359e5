"""Pytest fixtures for storefront tests."""

import os

# must be set before storefront.data.database creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

from contextlib import contextmanager
from decimal import Decimal

import pytest
import requests
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.data.database import Base
from storefront.data import models  # noqa: F401
from storefront.data.models import TenantModel, ProductModel, ProductVariantModel
from storefront.domain.errors import ConflictError
from storefront.domain.schemas import CreateOrderIn
from storefront.services.pipeline import build_pipeline
from storefront.utils.settings import PipelineConfig

WEBHOOK_SECRET = "test-webhook-secret-0123456789abcdef"
TENANT_ID = "tenant-1"


class FakeSupplierClient:
    """In-memory Supplier Hub: remembers orders by reference like the real one."""

    def __init__(self):
        self.orders = {}
        self.create_calls = []
        self.fail_with = None
        self.reject = False
        self.catalog = []

    def get_order(self, order_ref):
        return self.orders.get(order_ref)

    def create_order(self, order_ref, product_code, quantity, sell_price, currency, metadata=None):
        self.create_calls.append(order_ref)
        if self.fail_with is not None:
            raise self.fail_with
        if self.reject:
            return {"status": "failed", "message": "out of stock upstream"}

        n = len(self.create_calls)
        response = {
            "status": "success",
            "order_ref": order_ref,
            "deliverables": [
                {
                    "type": "card",
                    "key": "serial",
                    "value": f"{product_code}-{n}-{i}",
                    "extra": {"pin": f"PIN{n}{i}"},
                }
                for i in range(quantity)
            ],
        }
        self.orders[order_ref] = response
        return response

    def search_products(self, query):
        return self.catalog


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send_notification(self, **kwargs):
        self.sent.append(kwargs)


class FakeLockService:
    def __init__(self):
        self.acquired = []
        self.busy = set()

    @contextmanager
    def payer_lock(self, payer_id, ttl):
        if payer_id in self.busy:
            raise ConflictError("Another wallet payment for this customer is in progress. Please retry.")
        self.acquired.append(payer_id)
        yield


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def config():
    return PipelineConfig()


@pytest.fixture
def supplier():
    return FakeSupplierClient()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def locks():
    return FakeLockService()


@pytest.fixture
def pipeline(db, config, supplier, locks, notifier):
    return build_pipeline(
        db,
        config=config,
        supplier_client=supplier,
        locks=locks,
        notifier=notifier,
        webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def tenant(db):
    tenant = TenantModel(
        id=TENANT_ID,
        name="Test Store",
        subdomain="teststore",
        settings={"order_auto_accept": True, "tax_rate": "0", "shipping_flat_rate": "0"},
    )
    db.add(tenant)
    db.commit()
    return tenant


@pytest.fixture
def digital_product(db, tenant):
    product = ProductModel(
        tenant_id=tenant.id,
        name="Gift Card 100",
        sku="GC-100",
        price=Decimal("100.00"),
        cost_per_item=Decimal("90.00"),
        stock_count=0,
        product_code="GC100",
    )
    db.add(product)
    db.commit()
    return product


@pytest.fixture
def physical_product(db, tenant):
    product = ProductModel(
        tenant_id=tenant.id,
        name="T-Shirt",
        sku="TS-1",
        price=Decimal("25.00"),
        stock_count=10,
    )
    db.add(product)
    db.commit()
    return product


@pytest.fixture
def variant(db, physical_product):
    variant = ProductVariantModel(
        product_id=physical_product.id,
        name="Large",
        price=Decimal("30.00"),
        inventory_quantity=5,
    )
    db.add(variant)
    db.commit()
    return variant


def fund_wallet(pipeline, user_id, amount):
    return pipeline.wallet.credit(user_id, amount, "Top-up", "شحن", reference=f"topup-{user_id}-{amount}")


def make_cart(pipeline, lines, user_id=None, session_id="sess-1"):
    """``lines``: list of (product, quantity) or (product, quantity, variant)."""
    cart = pipeline.carts.get_or_create_cart(TENANT_ID, session_id=session_id, user_id=user_id)
    for line in lines:
        product, quantity = line[0], line[1]
        variant = line[2] if len(line) > 2 else None
        pipeline.carts.add_item(
            TENANT_ID,
            cart.id,
            product.id,
            quantity,
            variant_id=variant.id if variant else None,
            user_id=user_id,
        )
    return cart


def order_request(cart, **overrides):
    data = {
        "cart_id": cart.id,
        "customer_email": "buyer@example.com",
        "customer_name": "Buyer",
        "payment_method": "CARD",
    }
    data.update(overrides)
    return CreateOrderIn(**data)


def connection_error():
    return requests.ConnectionError("supplier down")
