from fastapi import APIRouter, Depends, HTTPException, status, Query, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, func, or_
from config import get_db
from models import UserProfile, Order, Listing, MasterItem
from routers.auth.auth import get_current_user, get_optional_current_user
from routers.auth.helpers import auth_helpers
from dependencies.rbac import require_orders_read, require_orders_write, require_orders_read_optional
from utils.response_helpers import safe_model_validate
from utils.projections import project_order
from utils.notifications import (
    dispatch_notification,
    dispatch_notifications,
    get_order_placed_notifications,
    get_order_response_notification,
    get_order_completed_notification,
    get_order_cancelled_notification
)
from .schemas import (
    OrderCreate, OrderRespond, OrderComplete, OrderCancel, OrderStatus, ContactMethod,
    OrderResponseStatus, OrderRoleFilter, OrderCreateResponse, OrderActionResponse,
    PendingOrdersCountResponse, OrderWithDetailsResponse, OrderListResponse
)
from .helpers import get_order_or_404, seller_actions, participant_actions
from typing import Optional
import uuid
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])

DUPLICATE_PENDING_ORDER = "You already have a pending order for this listing"


async def get_item_name(db: AsyncSession, master_item_id: uuid.UUID) -> str:
    master_item = await db.get(MasterItem, master_item_id)
    return master_item.name if master_item else "item"


@router.post("/create", response_model=OrderCreateResponse)
async def create_order(
    order_data: OrderCreate,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_orders_write)
):
    """
    Place a pending order against a listing.
    The listing's price and unit are snapshotted; stock is not reserved.
    """
    try:
        buyer = await auth_helpers.get_profile_by_id(db, current_user["profile_id"])
        if not buyer:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Buyer not found"
            )

        listing = await db.get(Listing, order_data.listing_id)
        if not listing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Listing not found"
            )

        if not listing.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Listing is no longer active"
            )

        seller = await db.get(UserProfile, listing.seller_id)
        if not seller:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Seller not found"
            )

        if seller.id == buyer.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You cannot order from your own listing"
            )

        existing_result = await db.execute(
            select(Order.id).where(
                Order.buyer_id == buyer.id,
                Order.listing_id == listing.id,
                Order.status == OrderStatus.PENDING.value
            )
        )
        if existing_result.first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=DUPLICATE_PENDING_ORDER
            )

        if order_data.quantity <= 0 or order_data.quantity > listing.quantity:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid quantity requested"
            )

        delivery_address = (order_data.delivery_address or "").strip()
        if order_data.contact_method == ContactMethod.DELIVERY and not delivery_address:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Please provide a delivery address"
            )

        buyer_phone = (order_data.buyer_phone or "").strip() or buyer.phone
        if not buyer_phone:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Please provide your phone number"
            )

        order = Order(
            listing_id=listing.id,
            buyer_id=buyer.id,
            seller_id=seller.id,
            master_item_id=listing.master_item_id,
            quantity=order_data.quantity,
            unit=listing.unit,
            price_per_unit=listing.price,
            total_amount=listing.price * order_data.quantity,
            contact_method=order_data.contact_method.value,
            delivery_address=delivery_address or None,
            preferred_time=order_data.preferred_time,
            buyer_message=order_data.buyer_message,
            buyer_phone=buyer_phone,
            buyer_name=buyer.name,
            status=OrderStatus.PENDING.value
        )

        item_name = await get_item_name(db, listing.master_item_id)

        db.add(order)
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent request won the pending-order slot
            await db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=DUPLICATE_PENDING_ORDER
            )

        background_tasks.add_task(
            dispatch_notifications,
            get_order_placed_notifications(
                order.id, seller.id, buyer.id, item_name, order.quantity, order.unit
            )
        )

        logger.info(f"Order {order.id} placed by {buyer.id} on listing {listing.id}")
        return OrderCreateResponse(order_id=str(order.id))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating order: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create order"
        )


@router.get("/my-orders", response_model=OrderListResponse)
async def get_my_orders(
    role_filter: OrderRoleFilter = Query(OrderRoleFilter.ALL, alias="type"),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_orders_read)
):
    """
    Get the caller's orders as buyer, seller or both, newest first
    """
    try:
        user_profile = await auth_helpers.get_profile_by_id(db, current_user["profile_id"])
        if not user_profile:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )

        if role_filter == OrderRoleFilter.BUYER:
            query = select(Order).where(Order.buyer_id == user_profile.id)
        elif role_filter == OrderRoleFilter.SELLER:
            query = select(Order).where(Order.seller_id == user_profile.id)
        else:
            query = select(Order).where(
                or_(Order.buyer_id == user_profile.id, Order.seller_id == user_profile.id)
            )

        if order_status:
            query = query.where(Order.status == order_status.value)

        result = await db.execute(query.order_by(Order.created_at.desc()))
        orders = result.scalars().all()

        orders_with_details = [
            safe_model_validate(OrderWithDetailsResponse, await project_order(db, order, user_profile.id))
            for order in orders
        ]

        return OrderListResponse(orders=orders_with_details, total=len(orders_with_details))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting orders: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve orders"
        )


@router.get("/pending-count", response_model=PendingOrdersCountResponse)
async def get_pending_orders_count(
    current_user = Depends(get_optional_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_orders_read_optional)
):
    """
    Number of pending orders waiting for the caller's response as seller
    """
    if not current_user or not current_user["profile_id"]:
        return PendingOrdersCountResponse(pending_count=0)

    try:
        result = await db.execute(
            select(func.count(Order.id)).where(
                Order.seller_id == current_user["profile_id"],
                Order.status == OrderStatus.PENDING.value
            )
        )
        return PendingOrdersCountResponse(pending_count=result.scalar() or 0)

    except Exception as e:
        logger.error(f"Error counting pending orders: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to count pending orders"
        )


@router.post("/{order_id}/respond", response_model=OrderActionResponse)
async def respond_to_order(
    order_id: uuid.UUID,
    response_data: OrderRespond,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_orders_write)
):
    """
    Seller accepts or rejects a pending order
    """
    try:
        order = await get_order_or_404(db, order_id)
        await seller_actions(order, current_user["profile_id"]).respond(
            db,
            response_data.status,
            response_data.seller_response,
            response_data.rejection_reason
        )
        item_name = await get_item_name(db, order.master_item_id)
        await db.commit()

        is_accepted = response_data.status == OrderResponseStatus.ACCEPTED
        seller_message = response_data.seller_response
        if not is_accepted:
            seller_message = seller_message or response_data.rejection_reason

        background_tasks.add_task(
            dispatch_notification,
            get_order_response_notification(
                order.id,
                order.buyer_id,
                order.seller_id,
                item_name,
                is_accepted,
                seller_message
            )
        )

        logger.info(f"Order {order.id} {order.status} by seller {order.seller_id}")
        return OrderActionResponse()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error responding to order {order_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to respond to order"
        )


@router.post("/{order_id}/complete", response_model=OrderActionResponse)
async def complete_order(
    order_id: uuid.UUID,
    completion_data: OrderComplete,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_orders_write)
):
    """
    Either party marks an accepted order as completed
    """
    try:
        order = await get_order_or_404(db, order_id)
        actions = participant_actions(order, current_user["profile_id"])
        await actions.complete(db, completion_data.completion_notes)
        item_name = await get_item_name(db, order.master_item_id)
        await db.commit()

        background_tasks.add_task(
            dispatch_notification,
            get_order_completed_notification(
                order.id,
                actions.counterparty_id,
                actions.actor_id,
                item_name,
                completion_data.completion_notes
            )
        )

        logger.info(f"Order {order.id} completed by {actions.actor_id}")
        return OrderActionResponse()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error completing order {order_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to complete order"
        )


@router.post("/{order_id}/cancel", response_model=OrderActionResponse)
async def cancel_order(
    order_id: uuid.UUID,
    cancel_data: OrderCancel,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_orders_write)
):
    """
    Either party cancels a pending or accepted order
    """
    try:
        order = await get_order_or_404(db, order_id)
        actions = participant_actions(order, current_user["profile_id"])
        await actions.cancel(db, cancel_data.reason)
        item_name = await get_item_name(db, order.master_item_id)
        await db.commit()

        background_tasks.add_task(
            dispatch_notification,
            get_order_cancelled_notification(
                order.id,
                actions.counterparty_id,
                actions.actor_id,
                item_name,
                actions.is_seller,
                cancel_data.reason
            )
        )

        logger.info(f"Order {order.id} cancelled by {actions.actor_id}")
        return OrderActionResponse()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error cancelling order {order_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel order"
        )
