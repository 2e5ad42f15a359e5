# storefront/main.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from storefront.data.database import Base, engine
from storefront.data import models  # noqa: F401  registers every table
from storefront.api.routers import carts, orders, wallets, payments, inventory, health
from storefront.domain.errors import StorefrontError
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def create_app(create_tables: bool = True) -> FastAPI:
    if create_tables:
        logger.info(f"Creating tables: {list(Base.metadata.tables.keys())}")
        Base.metadata.create_all(bind=engine)

    app = FastAPI(
        title="Storefront Order Service",
        version="1.0.0",
    )

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": str(exc), "error_type": type(exc).__name__},
        )

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(wallets.router)
    app.include_router(payments.router)
    app.include_router(inventory.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
