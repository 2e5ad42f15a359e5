# storefront/services/digital_delivery_service.py
import csv
import io
from dataclasses import dataclass, field

import requests

from storefront.services.supplier_client import SupplierHubClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SERIAL_KEYS = ("serial", "serial_number", "code", "card_code")
PIN_KEYS = ("pin", "card_pin")


@dataclass(frozen=True)
class DeliveryItem:
    product_id: str
    product_name: str
    product_code: str | None
    quantity: int
    price: float
    position: int = 0
    sku: str | None = None

    @property
    def supplier_code(self) -> str | None:
        """Supplier product code, falling back to the SKU."""
        for value in (self.product_code, self.sku):
            if value and value.strip():
                return value.strip()
        return None


@dataclass
class DeliveryResult:
    serial_numbers: list[str] = field(default_factory=list)
    serial_numbers_by_product: dict[str, list[dict]] = field(default_factory=dict)
    delivery_options: list[str] = field(default_factory=list)
    export_artifacts: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    error_ar: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.serial_numbers) and not self.error


def _units_from_deliverables(deliverables: list[dict]) -> list[dict]:
    """Turn supplier deliverables into ``{"serial_number", "pin"}`` units."""
    units = []
    for deliverable in deliverables or []:
        key = str(deliverable.get("key", "")).lower()
        if key not in SERIAL_KEYS:
            continue
        extra = deliverable.get("extra") or {}
        pin = next((extra.get(k) for k in PIN_KEYS if extra.get(k)), None)
        units.append({"serial_number": str(deliverable.get("value")), "pin": pin})
    return units


def build_export_artifacts(by_product: dict[str, list[dict]], options: list[str], order_number: str) -> dict[str, str]:
    artifacts = {}
    if "text" in options:
        lines = [f"Order {order_number}"]
        for product_name, units in by_product.items():
            lines.append("")
            lines.append(product_name)
            for unit in units:
                line = f"Serial: {unit['serial_number']}"
                if unit.get("pin"):
                    line += f"  PIN: {unit['pin']}"
                lines.append(line)
        artifacts["text"] = "\n".join(lines) + "\n"

    if "csv" in options or "excel" in options:
        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow(["product", "serial_number", "pin"])
        for product_name, units in by_product.items():
            for unit in units:
                writer.writerow([product_name, unit["serial_number"], unit.get("pin") or ""])
        artifacts["csv"] = buf.getvalue()
    return artifacts


class DigitalCardsDeliveryService:
    """
    Supplier-facing side of digital fulfillment: one supplier order per line,
    referenced as ``<order_id>-<position>-<code>`` so a retry picks up the
    codes an earlier attempt already bought instead of buying again. The code
    is the product code, or the SKU when the product has none.
    """

    def __init__(self, client: SupplierHubClient | None = None, currency: str = "SAR"):
        self.client = client or SupplierHubClient()
        self.currency = currency

    def process_digital_cards_delivery(
        self,
        tenant_id: str,
        order_id: str,
        payer_id: str | None,
        items: list[DeliveryItem],
        delivery_options: list[str] | None,
        customer_email: str | None = None,
        customer_name: str | None = None,
        customer_phone: str | None = None,
        order_number: str | None = None,
    ) -> DeliveryResult:
        options = list(delivery_options or ["text"])
        result = DeliveryResult(delivery_options=options)
        failures = []

        logger.info(f"Digital delivery start order={order_id} tenant={tenant_id} items={len(items)}")

        for item in items:
            code = item.supplier_code
            if not code:
                failures.append(f"{item.product_name}: no supplier product code or SKU")
                continue

            # one supplier order per line, lines may share a product code
            order_ref = f"{order_id}-{item.position}-{code}"
            try:
                response = self.client.get_order(order_ref)
                if response is None or response.get("status") != "success":
                    response = self.client.create_order(
                        order_ref=order_ref,
                        product_code=code,
                        quantity=item.quantity,
                        sell_price=item.price,
                        currency=self.currency,
                        metadata={
                            "tenant_id": tenant_id,
                            "payer_id": payer_id,
                            "customer_email": customer_email,
                            "customer_name": customer_name,
                            "customer_phone": customer_phone,
                        },
                    )
            except requests.RequestException as e:
                logger.error(f"Supplier call failed for {order_ref}: {e}")
                failures.append(f"{item.product_name}: supplier unreachable ({e})")
                continue

            if response.get("status") != "success":
                failures.append(f"{item.product_name}: {response.get('message') or response.get('code') or 'supplier rejected the order'}")
                continue

            units = _units_from_deliverables(response.get("deliverables"))
            if len(units) < item.quantity:
                failures.append(f"{item.product_name}: supplier returned {len(units)} of {item.quantity} codes")
                continue

            units = units[: item.quantity]
            result.serial_numbers_by_product.setdefault(item.product_name, []).extend(units)
            result.serial_numbers.extend(unit["serial_number"] for unit in units)

        if failures:
            result.error = "Digital delivery failed: " + "; ".join(failures)
            result.error_ar = "فشل تسليم البطاقات الرقمية: " + "؛ ".join(failures)
            logger.warning(f"Digital delivery for order {order_id} finished with {len(failures)} errors")
        else:
            result.export_artifacts = build_export_artifacts(
                result.serial_numbers_by_product, options, order_number or order_id
            )
            logger.info(f"Digital delivery for order {order_id} produced {len(result.serial_numbers)} codes")
        return result
