from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum
import uuid


class NotificationType(str, Enum):
    LISTING_CREATED = "listing_created"
    LISTING_SOLD = "listing_sold"
    LISTING_EXPIRED = "listing_expired"
    ORDER_PLACED = "order_placed"
    ORDER_ACCEPTED = "order_accepted"
    ORDER_REJECTED = "order_rejected"
    ORDER_COMPLETED = "order_completed"
    CONTACT_REQUEST = "contact_request"
    MESSAGE_RECEIVED = "message_received"
    REVIEW_RECEIVED = "review_received"
    PROFILE_UPDATED = "profile_updated"
    SYSTEM = "system"


class NotificationCategory(str, Enum):
    ORDERS = "orders"
    LISTINGS = "listings"
    MESSAGES = "messages"
    REVIEWS = "reviews"
    SYSTEM = "system"


class RelatedType(str, Enum):
    LISTING = "listing"
    ORDER = "order"
    CHAT = "chat"
    REVIEW = "review"
    USER = "user"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationCreate(BaseModel):
    """A notification waiting to be dispatched"""
    user_id: uuid.UUID
    title: str
    message: str
    type: NotificationType
    category: Optional[NotificationCategory] = None
    related_id: Optional[str] = None
    related_type: Optional[RelatedType] = None
    metadata: Optional[Dict[str, Any]] = None
    action_url: Optional[str] = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    sender_id: Optional[uuid.UUID] = None


class NotificationSender(BaseModel):
    id: str
    name: str
    image_url: Optional[str] = None
    shop_name: Optional[str] = None


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    type: str
    category: Optional[str] = None
    related_id: Optional[str] = None
    related_type: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    action_url: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    priority: str
    sender_id: Optional[str] = None
    created_at: datetime
    sender: Optional[NotificationSender] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    success: bool = True
    marked_count: int


class NotificationActionResponse(BaseModel):
    success: bool = True
