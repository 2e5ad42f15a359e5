"""Error taxonomy for the order pipeline.

Every error carries the HTTP status it maps to; the API layer registers a
single handler for ``StorefrontError``.
"""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    status_code = 500


class ValidationError(StorefrontError):
    """Malformed input or a request the business rules never allow."""

    status_code = 400


class ForbiddenError(StorefrontError):
    """Caller is not allowed to perform the operation."""

    status_code = 403


class NotFoundError(StorefrontError):
    """Raised when a tenant, cart, order or wallet doesn't exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        msg = f"{entity} not found"
        if entity_id:
            msg = f"{entity} not found: {entity_id}"
        super().__init__(msg)


class ConflictError(StorefrontError):
    """Request clashes with current state (stock, balance, order status)."""

    status_code = 409


class InsufficientInventoryError(ConflictError):
    def __init__(self, product_name: str, available: int, requested: int):
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient inventory for {product_name}. "
            f"Available: {available}, Requested: {requested}"
        )


class InsufficientBalanceError(ConflictError):
    def __init__(self, message: str = "Insufficient wallet balance to complete this transaction."):
        super().__init__(message)


class ExternalServiceError(StorefrontError):
    """Supplier or gateway unreachable or answered with an error."""

    status_code = 502

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}")


class IntegrityViolationError(StorefrontError):
    """Persisted state contradicts itself, e.g. ledger tail vs wallet balance."""

    status_code = 500
