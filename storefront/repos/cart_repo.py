# storefront/repos/cart_repo.py
from sqlalchemy import select, delete
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart(self, tenant_id: str, cart_id: str, fresh: bool = False) -> CartModel | None:
        stmt = (
            select(CartModel)
            .where(CartModel.id == cart_id, CartModel.tenant_id == tenant_id)
            .options(
                selectinload(CartModel.items).selectinload(CartItemModel.product),
                selectinload(CartModel.items).selectinload(CartItemModel.variant),
            )
        )
        if fresh:
            # re-read rows already in the identity map
            stmt = stmt.execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_cart_by_owner(
        self,
        tenant_id: str,
        session_id: str | None = None,
        user_id: str | None = None,
    ) -> CartModel | None:
        stmt = select(CartModel).where(CartModel.tenant_id == tenant_id)
        if user_id:
            stmt = stmt.where(CartModel.user_id == user_id)
        else:
            stmt = stmt.where(CartModel.session_id == session_id)
        return self.db.execute(stmt.order_by(CartModel.created_at.desc())).scalars().first()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.commit()
        self.db.refresh(cart)
        return cart

    def get_cart_item(self, cart_id: str, product_id: str, variant_id: str | None) -> CartItemModel | None:
        stmt = select(CartItemModel).where(
            CartItemModel.cart_id == cart_id,
            CartItemModel.product_id == product_id,
            CartItemModel.variant_id.is_(None) if variant_id is None else CartItemModel.variant_id == variant_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_items(self, cart_id: str) -> int:
        result = self.db.execute(
            delete(CartItemModel).where(CartItemModel.cart_id == cart_id)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
