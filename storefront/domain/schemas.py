# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List
from decimal import Decimal
from datetime import datetime


class CreateCartIn(BaseModel):
    """Schema for creating (or fetching) a cart."""

    session_id: str | None = Field(None, description="Guest session id")
    user_id: str | None = Field(None, description="Signed-in customer id")


class ItemIn(BaseModel):
    """Schema for adding a product to a cart."""

    product_id: str = Field(..., min_length=1)
    variant_id: str | None = None
    quantity: int = Field(..., gt=0, description="Quantity (must be > 0)")


class CartItemOut(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class CartOut(BaseModel):
    id: str
    tenant_id: str
    session_id: str | None = None
    user_id: str | None = None
    items: List[CartItemOut]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal


class CreateOrderIn(BaseModel):
    """Schema for placing an order from a cart."""

    cart_id: str = Field(..., min_length=1)
    customer_email: str = Field(..., min_length=3, max_length=254)
    customer_name: str | None = Field(None, max_length=200)
    customer_phone: str | None = Field(None, max_length=32)
    shipping_address: dict | None = None
    billing_address: dict | None = None
    notes: str | None = None
    payment_method: str | None = Field(None, description="e.g. CARD, WALLET_BALANCE, CASH_ON_DELIVERY")
    use_wallet_balance: bool = False
    delivery_options: List[str] | None = Field(None, description="text, csv, excel, inventory")


class OrderItemOut(BaseModel):
    product_id: str
    variant_id: str | None = None
    product_name: str
    variant_name: str | None = None
    quantity: int
    price: Decimal
    is_instant: bool

    model_config = ConfigDict(from_attributes=True)


class DeliveryFilesOut(BaseModel):
    serial_numbers: List[str] = []
    serial_numbers_by_product: dict = {}
    delivery_options: List[str] = []
    export_artifacts: dict = {}
    error: str | None = None
    error_ar: str | None = None
    requires_reveal: bool = False


class OrderOut(BaseModel):
    id: str
    tenant_id: str
    order_number: str
    customer_email: str
    customer_name: str | None = None
    is_guest: bool
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    status: str
    payment_status: str
    payment_method: str | None = None
    delivery_files: DeliveryFilesOut
    delivery_attempts: int
    rejection_reason: str | None = None
    paid_at: datetime | None = None
    created_at: datetime
    items: List[OrderItemOut]


class OrderListOut(BaseModel):
    data: List[OrderOut]
    total: int
    page: int
    limit: int
    total_pages: int


class ReasonIn(BaseModel):
    reason: str | None = Field(None, max_length=500)


class WalletOut(BaseModel):
    id: str
    user_id: str
    balance: Decimal
    currency: str

    model_config = ConfigDict(from_attributes=True)


class BalanceCheckOut(BaseModel):
    user_id: str
    amount: Decimal
    balance: Decimal
    available: Decimal
    sufficient: bool


class TopUpIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    reference: str | None = None
    description: str | None = None


class WalletTransactionOut(BaseModel):
    id: str
    type: str
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    currency: str
    description: str | None = None
    description_ar: str | None = None
    reference: str | None = None
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WalletTransactionListOut(BaseModel):
    data: List[WalletTransactionOut]
    total: int
    page: int
    limit: int
    total_pages: int


class WebhookResultOut(BaseModel):
    order_id: str | None = None
    outcome: str
    payment_status: str | None = None
    status: str | None = None


class EmergencyItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    reason: str = Field("manual", pattern="^(cost_gt_price|needed|refund_returned|manual)$")
    notes: str | None = None


class EmergencyUpsertIn(BaseModel):
    items: List[EmergencyItemIn] = Field(..., min_length=1)


class EmergencyItemOut(BaseModel):
    id: str
    product_id: str
    reason: str
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EmergencyListOut(BaseModel):
    data: List[EmergencyItemOut]
    total: int
    page: int
    limit: int
    total_pages: int


class AuditOut(BaseModel):
    cost_gt_price: int
    needed: int
