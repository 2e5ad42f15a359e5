# storefront/services/supplier_client.py
import requests

from storefront.utils.retry import http_retry
from storefront.utils.settings import SUPPLIER_HUB_URL, SUPPLIER_HUB_API_KEY, SUPPLIER_HUB_TIMEOUT
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class SupplierHubClient:
    """
    HTTP client for the Supplier Hub, which sources digital codes from
    upstream providers. ``order_ref`` is the idempotency key: creating the
    same reference twice returns the first result.
    """

    def __init__(self, base_url: str | None = None, api_key: str | None = None, timeout: int | None = None):
        self.base_url = (base_url or SUPPLIER_HUB_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else SUPPLIER_HUB_API_KEY
        self.timeout = timeout or SUPPLIER_HUB_TIMEOUT
        self.session = requests.Session()

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    @http_retry()
    def create_order(
        self,
        order_ref: str,
        product_code: str,
        quantity: int,
        sell_price: float,
        currency: str,
        metadata: dict | None = None,
    ) -> dict:
        url = f"{self.base_url}/api/v1/orders"
        logger.info(f"SupplierHub POST {url} ref={order_ref} code={product_code} qty={quantity}")

        resp = self.session.post(
            url,
            json={
                "order_ref": order_ref,
                "product_code": product_code,
                "quantity": quantity,
                "sell_price": sell_price,
                "currency": currency,
                "metadata": metadata or {},
            },
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    @http_retry()
    def get_order(self, order_ref: str) -> dict | None:
        url = f"{self.base_url}/api/v1/orders/{order_ref}"
        logger.info(f"SupplierHub GET {url}")

        resp = self.session.get(url, headers=self._headers(), timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    @http_retry()
    def search_products(self, query: str) -> list[dict]:
        url = f"{self.base_url}/api/v1/products"
        logger.info(f"SupplierHub GET {url} search={query}")

        resp = self.session.get(
            url,
            params={"search": query},
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        body = resp.json()
        return body.get("data", body) if isinstance(body, dict) else body
