from config import get_session_factory
from models import Notification
from routers.notifications.schemas import (
    NotificationCreate, NotificationType, NotificationCategory,
    RelatedType, NotificationPriority
)
import logging
import uuid
from typing import Optional, List

logger = logging.getLogger(__name__)

ORDERS_URL = "/profile/orders"
MESSAGES_URL = "/messages"


async def dispatch_notification(notification: NotificationCreate) -> Optional[uuid.UUID]:
    """
    Persist one notification in its own session.
    Runs as a background task after the triggering mutation committed, so it
    never raises: a failure here is logged and the order/chat change stands.
    """
    try:
        session_factory = get_session_factory()
        async with session_factory() as session:
            record = Notification(
                user_id=notification.user_id,
                title=notification.title,
                message=notification.message,
                type=notification.type.value,
                category=notification.category.value if notification.category else None,
                related_id=notification.related_id,
                related_type=notification.related_type.value if notification.related_type else None,
                notification_metadata=notification.metadata,
                action_url=notification.action_url,
                is_read=False,
                priority=notification.priority.value,
                sender_id=notification.sender_id
            )
            session.add(record)
            await session.commit()
            logger.info(f"Notification {notification.type.value} sent to {notification.user_id}")
            return record.id
    except Exception as e:
        logger.error(f"Failed to dispatch {notification.type.value} notification to {notification.user_id}: {str(e)}")
        return None


async def dispatch_notifications(notifications: List[NotificationCreate]) -> int:
    """Dispatch several notifications; returns how many were stored"""
    stored = 0
    for notification in notifications:
        if await dispatch_notification(notification) is not None:
            stored += 1
    return stored


# Order Templates
def get_order_placed_notifications(
    order_id: uuid.UUID,
    seller_id: uuid.UUID,
    buyer_id: uuid.UUID,
    item_name: str,
    quantity: float,
    unit: str
) -> List[NotificationCreate]:
    """Seller is asked to respond, buyer gets a confirmation"""
    amount = format_quantity(quantity)
    return [
        NotificationCreate(
            user_id=seller_id,
            title="🛒 New Order Received!",
            message=f"Someone wants to buy {amount} {unit} of {item_name}. Please review and respond.",
            type=NotificationType.ORDER_PLACED,
            category=NotificationCategory.ORDERS,
            related_id=str(order_id),
            related_type=RelatedType.ORDER,
            action_url=ORDERS_URL,
            priority=NotificationPriority.HIGH,
            sender_id=buyer_id
        ),
        NotificationCreate(
            user_id=buyer_id,
            title="📦 Order Placed Successfully!",
            message=f"Your order for {amount} {unit} of {item_name} has been sent to the seller. You'll be notified when they respond.",
            type=NotificationType.ORDER_PLACED,
            category=NotificationCategory.ORDERS,
            related_id=str(order_id),
            related_type=RelatedType.ORDER,
            action_url=ORDERS_URL,
            priority=NotificationPriority.MEDIUM
        ),
    ]


def get_order_response_notification(
    order_id: uuid.UUID,
    buyer_id: uuid.UUID,
    seller_id: uuid.UUID,
    item_name: str,
    is_accepted: bool,
    seller_message: Optional[str] = None
) -> NotificationCreate:
    """Tell the buyer whether the seller accepted or declined"""
    if is_accepted:
        title = "✅ Order Accepted!"
        follow_up = f'Message: "{seller_message}"' if seller_message else "Check your orders for next steps."
        message = f"Great news! The seller has accepted your order for {item_name}. {follow_up}"
    else:
        title = "❌ Order Declined"
        follow_up = f'Reason: "{seller_message}"' if seller_message else "You can try contacting other sellers."
        message = f"Unfortunately, your order for {item_name} has been declined. {follow_up}"

    return NotificationCreate(
        user_id=buyer_id,
        title=title,
        message=message,
        type=NotificationType.ORDER_ACCEPTED if is_accepted else NotificationType.ORDER_REJECTED,
        category=NotificationCategory.ORDERS,
        related_id=str(order_id),
        related_type=RelatedType.ORDER,
        action_url=ORDERS_URL,
        priority=NotificationPriority.HIGH,
        sender_id=seller_id
    )


def get_order_completed_notification(
    order_id: uuid.UUID,
    recipient_id: uuid.UUID,
    sender_id: uuid.UUID,
    item_name: str,
    completion_notes: Optional[str] = None
) -> NotificationCreate:
    notes = f' Notes: "{completion_notes}"' if completion_notes else ""
    return NotificationCreate(
        user_id=recipient_id,
        title="✅ Order Completed!",
        message=f"The order for {item_name} has been marked as completed.{notes}",
        type=NotificationType.ORDER_COMPLETED,
        category=NotificationCategory.ORDERS,
        related_id=str(order_id),
        related_type=RelatedType.ORDER,
        action_url=ORDERS_URL,
        priority=NotificationPriority.MEDIUM,
        sender_id=sender_id
    )


def get_order_cancelled_notification(
    order_id: uuid.UUID,
    recipient_id: uuid.UUID,
    sender_id: uuid.UUID,
    item_name: str,
    cancelled_by_seller: bool,
    reason: Optional[str] = None
) -> NotificationCreate:
    party = "seller" if cancelled_by_seller else "buyer"
    reason_text = f' Reason: "{reason}"' if reason else ""
    return NotificationCreate(
        user_id=recipient_id,
        title="❌ Order Cancelled",
        message=f"The {party} has cancelled the order for {item_name}.{reason_text}",
        type=NotificationType.ORDER_REJECTED,
        category=NotificationCategory.ORDERS,
        related_id=str(order_id),
        related_type=RelatedType.ORDER,
        action_url=ORDERS_URL,
        priority=NotificationPriority.MEDIUM,
        sender_id=sender_id
    )


# Chat Templates
def get_message_received_notification(
    chat_id: uuid.UUID,
    recipient_id: uuid.UUID,
    sender_id: uuid.UUID,
    sender_name: Optional[str],
    item_name: Optional[str],
    body: str
) -> NotificationCreate:
    snippet = body[:50] + ("..." if len(body) > 50 else "")
    return NotificationCreate(
        user_id=recipient_id,
        title=f"New message from {sender_name or 'Someone'}",
        message=f"About {item_name or 'your listing'}: {snippet}",
        type=NotificationType.MESSAGE_RECEIVED,
        category=NotificationCategory.MESSAGES,
        related_id=str(chat_id),
        related_type=RelatedType.CHAT,
        action_url=MESSAGES_URL,
        priority=NotificationPriority.MEDIUM,
        sender_id=sender_id
    )


def format_quantity(quantity: float) -> str:
    """2.0 -> "2", 1.5 -> "1.5" """
    return f"{quantity:g}"
