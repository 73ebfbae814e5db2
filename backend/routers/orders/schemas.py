from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from enum import Enum
import uuid


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ContactMethod(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    BOTH = "both"


class OrderResponseStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class OrderRoleFilter(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ALL = "all"


class OrderCreate(BaseModel):
    listing_id: uuid.UUID
    quantity: float
    contact_method: ContactMethod
    delivery_address: Optional[str] = None
    preferred_time: Optional[str] = None
    buyer_message: Optional[str] = None
    buyer_phone: Optional[str] = None


class OrderRespond(BaseModel):
    status: OrderResponseStatus
    seller_response: Optional[str] = None
    rejection_reason: Optional[str] = None


class OrderComplete(BaseModel):
    completion_notes: Optional[str] = None


class OrderCancel(BaseModel):
    reason: Optional[str] = None


class OrderCreateResponse(BaseModel):
    order_id: str
    success: bool = True


class OrderActionResponse(BaseModel):
    success: bool = True


class PendingOrdersCountResponse(BaseModel):
    pending_count: int


class OrderResponse(BaseModel):
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    master_item_id: str
    quantity: float
    unit: str
    price_per_unit: float
    total_amount: float
    contact_method: str
    delivery_address: Optional[str] = None
    preferred_time: Optional[str] = None
    buyer_message: Optional[str] = None
    buyer_phone: Optional[str] = None
    buyer_name: Optional[str] = None
    status: str
    seller_response: Optional[str] = None
    rejection_reason: Optional[str] = None
    responded_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completion_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class OrderListingSummary(BaseModel):
    id: str
    image_url: Optional[str] = None
    description: Optional[str] = None
    is_active: bool


class MasterItemSummary(BaseModel):
    id: str
    name: str
    category: str
    image_url: Optional[str] = None


class OrderPartySummary(BaseModel):
    id: str
    name: str
    phone: Optional[str] = None
    shop_name: Optional[str] = None
    shop_address: Optional[str] = None
    image_url: Optional[str] = None


class OrderWithDetailsResponse(OrderResponse):
    user_role: str
    listing: Optional[OrderListingSummary] = None
    master_item: Optional[MasterItemSummary] = None
    buyer: Optional[OrderPartySummary] = None
    seller: Optional[OrderPartySummary] = None


class OrderListResponse(BaseModel):
    orders: List[OrderWithDetailsResponse]
    total: int
