from pydantic import BaseModel
from typing import Optional, Dict, List
from datetime import datetime
from enum import Enum
import uuid


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    LOCATION = "location"
    SYSTEM = "system"


class OutgoingMessageType(str, Enum):
    """Message types a participant may send; system messages are server-side only"""
    TEXT = "text"
    IMAGE = "image"
    LOCATION = "location"


class SystemMessageType(str, Enum):
    CHAT_STARTED = "chat_started"
    LISTING_SOLD = "listing_sold"
    LISTING_EXPIRED = "listing_expired"


# Request schemas
class ChatCreate(BaseModel):
    listing_id: uuid.UUID
    buyer_id: uuid.UUID
    seller_id: uuid.UUID


class MessageCreate(BaseModel):
    body: str
    message_type: OutgoingMessageType = OutgoingMessageType.TEXT
    image_url: Optional[str] = None


class ChatBlockUpdate(BaseModel):
    is_blocked: bool


# Response schemas
class ChatCreateResponse(BaseModel):
    chat_id: str


class MessageCreateResponse(BaseModel):
    message_id: str


class ChatActionResponse(BaseModel):
    success: bool = True


class MarkReadResponse(BaseModel):
    success: bool = True
    marked_count: int


class ParticipantSummary(BaseModel):
    id: str
    name: str
    image_url: Optional[str] = None


class SellerSummary(ParticipantSummary):
    phone: Optional[str] = None
    shop_name: Optional[str] = None
    shop_address: Optional[str] = None


class MessageResponse(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    body: str
    message_type: str
    image_url: Optional[str] = None
    system_message_type: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    is_deleted: bool
    created_at: datetime
    sender: Optional[ParticipantSummary] = None


class ChatResponse(BaseModel):
    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    participants: List[str]
    is_active: bool
    is_blocked: bool
    blocked_by: Optional[str] = None
    last_message_at: datetime
    last_message_preview: Optional[str] = None
    unread_counts: Dict[str, int]
    created_at: datetime
    updated_at: datetime


class ChatMasterItem(BaseModel):
    name: str
    category: str


class ChatListingSummary(BaseModel):
    id: str
    master_item_id: str
    price: float
    unit: str
    image_url: Optional[str] = None
    master_item: Optional[ChatMasterItem] = None


class ChatListItemResponse(ChatResponse):
    listing: Optional[ChatListingSummary] = None
    other_participant: Optional[ParticipantSummary] = None
    unread_count: int


class ChatDetailMasterItem(ChatMasterItem):
    id: str
    image_url: Optional[str] = None


class ChatDetailListing(BaseModel):
    id: str
    master_item_id: str
    seller_id: str
    price: float
    quantity: float
    unit: str
    image_url: Optional[str] = None
    master_item: Optional[ChatDetailMasterItem] = None
    seller: Optional[SellerSummary] = None


class ChatDetailResponse(ChatResponse):
    listing: ChatDetailListing
