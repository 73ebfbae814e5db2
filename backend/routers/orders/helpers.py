"""
Order state machine and the role-scoped actions buyers and sellers may take
on a single order.

Every transition is a single UPDATE guarded on the order still being in one
of its source states.
"""
from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from models import Order
from .schemas import OrderStatus, OrderResponseStatus
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set
import uuid

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.ACCEPTED, OrderStatus.REJECTED, OrderStatus.CANCELLED},
    OrderStatus.ACCEPTED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.REJECTED: set(),
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}


def source_states(target: OrderStatus) -> Set[str]:
    """Statuses an order may move to `target` from"""
    return {source.value for source, targets in ORDER_TRANSITIONS.items() if target in targets}


async def get_order_or_404(db: AsyncSession, order_id: uuid.UUID) -> Order:
    order = await db.get(Order, order_id)
    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found"
        )
    return order


async def apply_transition(
    db: AsyncSession,
    order: Order,
    target: OrderStatus,
    values: Dict[str, Any]
) -> bool:
    """
    Move the order to `target` only if it is still in an allowed source state.
    Returns False when the row was already moved on by someone else.
    """
    values = {"status": target.value, **values}
    result = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status.in_(sorted(source_states(target))))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    for key, value in values.items():
        set_committed_value(order, key, value)
    return True


async def current_status(db: AsyncSession, order: Order) -> str:
    result = await db.execute(select(Order.status).where(Order.id == order.id))
    return result.scalar_one()


class SellerOrderActions:
    """Transitions reserved for the seller of an order"""

    def __init__(self, order: Order, seller_id: uuid.UUID):
        self.order = order
        self.seller_id = seller_id

    async def respond(
        self,
        db: AsyncSession,
        response_status: OrderResponseStatus,
        seller_response: Optional[str] = None,
        rejection_reason: Optional[str] = None
    ) -> Order:
        is_rejected = response_status == OrderResponseStatus.REJECTED
        moved = await apply_transition(db, self.order, OrderStatus(response_status.value), {
            "seller_response": seller_response,
            "rejection_reason": rejection_reason if is_rejected else None,
            "responded_at": datetime.now(timezone.utc)
        })
        if not moved:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Order has already been responded to"
            )
        return self.order


class ParticipantOrderActions:
    """Transitions either party of an order may perform"""

    def __init__(self, order: Order, actor_id: uuid.UUID):
        self.order = order
        self.actor_id = actor_id

    @property
    def is_seller(self) -> bool:
        return self.actor_id == self.order.seller_id

    @property
    def counterparty_id(self) -> uuid.UUID:
        return self.order.buyer_id if self.is_seller else self.order.seller_id

    async def complete(self, db: AsyncSession, completion_notes: Optional[str] = None) -> Order:
        moved = await apply_transition(db, self.order, OrderStatus.COMPLETED, {
            "completed_at": datetime.now(timezone.utc),
            "completion_notes": completion_notes
        })
        if not moved:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Order must be accepted before it can be completed"
            )
        return self.order

    async def cancel(self, db: AsyncSession, reason: Optional[str] = None) -> Order:
        # Only pending and accepted orders can still be cancelled
        moved = await apply_transition(db, self.order, OrderStatus.CANCELLED, {
            "rejection_reason": reason,
            "responded_at": datetime.now(timezone.utc)
        })
        if not moved:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot cancel {await current_status(db, self.order)} orders"
            )
        return self.order


def seller_actions(order: Order, user_id: uuid.UUID) -> SellerOrderActions:
    if order.seller_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized: You can only respond to your own orders"
        )
    return SellerOrderActions(order, user_id)


def participant_actions(order: Order, user_id: uuid.UUID) -> ParticipantOrderActions:
    if user_id not in (order.seller_id, order.buyer_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized"
        )
    return ParticipantOrderActions(order, user_id)
