# storefront/repos/order_repo.py
from sqlalchemy import select, update, func, or_
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel, OrderItemModel, SettlementModel


def _with_children(stmt):
    return stmt.options(
        selectinload(OrderModel.items),
        selectinload(OrderModel.settlement),
    )


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: str, fresh: bool = False) -> OrderModel | None:
        stmt = _with_children(select(OrderModel).where(OrderModel.id == order_id))
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_tenant_order(self, tenant_id: str, order_id: str, fresh: bool = False) -> OrderModel | None:
        stmt = _with_children(
            select(OrderModel).where(OrderModel.id == order_id, OrderModel.tenant_id == tenant_id)
        )
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def order_number_exists(self, order_number: str) -> bool:
        return (
            self.db.execute(
                select(OrderModel.id).where(OrderModel.order_number == order_number)
            ).first()
            is not None
        )

    def list_orders(
        self,
        tenant_id: str,
        offset: int,
        limit: int,
        status: str | None = None,
        customer_email: str | None = None,
        user_id: str | None = None,
        query: str | None = None,
    ) -> tuple[list[OrderModel], int]:
        conditions = [OrderModel.tenant_id == tenant_id]
        if status:
            conditions.append(OrderModel.status == status)

        owner = []
        if customer_email:
            email = customer_email.lower()
            owner.append(func.lower(OrderModel.customer_email) == email)
            owner.append(func.lower(OrderModel.guest_email) == email)
        if user_id:
            owner.append(
                OrderModel.id.in_(
                    select(SettlementModel.order_id).where(SettlementModel.payer_id == user_id)
                )
            )
        if owner:
            conditions.append(or_(*owner))

        if query:
            pattern = f"%{query.lower()}%"
            conditions.append(
                or_(
                    func.lower(OrderModel.order_number).like(pattern),
                    func.lower(OrderModel.customer_email).like(pattern),
                    func.lower(OrderModel.customer_name).like(pattern),
                )
            )

        total = self.db.execute(
            select(func.count()).select_from(OrderModel).where(*conditions)
        ).scalar_one()
        rows = self.db.execute(
            _with_children(select(OrderModel).where(*conditions))
            .order_by(OrderModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return list(rows), total

    def transition_settlement(
        self,
        order_id: str,
        from_state: str,
        to_state: str,
        version: int,
    ) -> int:
        """
        Optimistic update on the settlement row, e.g.
        UPDATE order_settlements SET state='CHARGED', version=2
        WHERE order_id=:id AND state='RESERVED' AND version=1
        """
        result = self.db.execute(
            update(SettlementModel)
            .where(
                SettlementModel.order_id == order_id,
                SettlementModel.wallet_debit_state == from_state,
                SettlementModel.version == version,
            )
            .values(wallet_debit_state=to_state, version=version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def find_retry_candidates(self, max_attempts: int, limit: int = 50) -> list[str]:
        """Orders paid (or wallet-reserved) with instant items and no codes yet."""
        paid_or_reserved = or_(
            OrderModel.payment_status == "SUCCEEDED",
            SettlementModel.wallet_debit_state == "RESERVED",
        )
        # masked codes wait for the customer to reveal them
        no_codes_or_paid = or_(
            OrderModel.delivery_files["serial_numbers"].as_string().is_(None),
            OrderModel.payment_status == "SUCCEEDED",
        )
        stmt = (
            select(OrderModel)
            .join(SettlementModel, SettlementModel.order_id == OrderModel.id)
            .where(
                paid_or_reserved,
                no_codes_or_paid,
                OrderModel.status.not_in(("CANCELLED", "REJECTED", "REFUNDED", "DELIVERED")),
                OrderModel.payment_status != "REFUNDED",
                OrderModel.delivery_attempts < max_attempts,
                OrderModel.id.in_(
                    select(OrderItemModel.order_id).where(OrderItemModel.is_instant.is_(True))
                ),
            )
            .order_by(OrderModel.created_at)
            .limit(limit)
        )
        return [order.id for order in self.db.execute(stmt).scalars().all()]

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
