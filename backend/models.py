from sqlalchemy import (
    Boolean,
    String,
    Text,
    DateTime,
    CheckConstraint,
    Index,
    text,
    ForeignKey,
    Float,
    Integer,
    JSON,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship, declarative_base
from datetime import datetime, timezone
from typing import Optional, List, Dict
import uuid

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def make_participant_key(first_id: uuid.UUID, second_id: uuid.UUID) -> str:
    """Order-insensitive key for a pair of chat participants"""
    return ":".join(sorted([str(first_id), str(second_id)]))


class UserProfile(Base):
    """
    Marketplace user profile. Owned by the profile service, read-only here.
    user_id is the subject of the identity provider's access token.
    """
    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    image_url: Mapped[Optional[str]] = mapped_column(String(500))

    # Shop Information
    shop_name: Mapped[Optional[str]] = mapped_column(String(200))
    shop_address: Mapped[Optional[str]] = mapped_column(Text)

    # Role-based access control
    role: Mapped[str] = mapped_column(String(50), default="user", nullable=False)
    account_type: Mapped[Optional[str]] = mapped_column(String(20))  # "vendor", "customer", "both"
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=utc_now,
        nullable=False
    )

    listings: Mapped[List["Listing"]] = relationship("Listing", back_populates="seller")


class MasterItem(Base):
    """
    Canonical catalog entry (e.g. "Onion") that listings reference
    """
    __tablename__ = "master_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)  # e.g. "Vegetable", "Spice", "Dairy"
    image_url: Mapped[Optional[str]] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class Listing(Base):
    """
    A seller's surplus offer of a master item. Read-only here: orders never
    decrement quantity.
    """
    __tablename__ = "listings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    master_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("master_items.id", ondelete="RESTRICT"),
        nullable=False
    )

    image_url: Mapped[Optional[str]] = mapped_column(String(500))
    description: Mapped[Optional[str]] = mapped_column(Text)

    # Pricing & Quantity
    price: Mapped[float] = mapped_column(Float, nullable=False)  # smallest currency unit (paise)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)  # kg, pieces, liters, etc.

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=utc_now,
        nullable=False
    )

    seller: Mapped["UserProfile"] = relationship("UserProfile", back_populates="listings")
    master_item: Mapped["MasterItem"] = relationship("MasterItem")


class Order(Base):
    """
    A buyer's request to purchase from a listing, negotiated with the seller
    """
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="order_quantity_positive_check"),
        CheckConstraint("buyer_id != seller_id", name="no_self_order_check"),
        # At most one pending order per buyer and listing
        Index(
            "uq_orders_pending_buyer_listing",
            "buyer_id",
            "listing_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("ix_orders_seller_status", "seller_id", "status"),
        Index("ix_orders_buyer_status", "buyer_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Order participants
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    master_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("master_items.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Snapshot of the listing at creation time
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    price_per_unit: Mapped[float] = mapped_column(Float, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)

    # Contact & Delivery
    contact_method: Mapped[str] = mapped_column(String(20), nullable=False)  # "pickup", "delivery", "both"
    delivery_address: Mapped[Optional[str]] = mapped_column(Text)
    preferred_time: Mapped[Optional[str]] = mapped_column(String(100))
    buyer_message: Mapped[Optional[str]] = mapped_column(Text)
    buyer_phone: Mapped[Optional[str]] = mapped_column(String(20))
    buyer_name: Mapped[Optional[str]] = mapped_column(String(200))

    # Negotiation
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)  # "pending", "accepted", "rejected", "completed", "cancelled"
    seller_response: Mapped[Optional[str]] = mapped_column(Text)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(True))
    completion_notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=utc_now,
        nullable=False
    )


class Chat(Base):
    """
    Two-party conversation about one listing. The (buyer, seller) pair is
    fixed at creation; unread counters are kept per participant.
    """
    __tablename__ = "chats"
    __table_args__ = (
        CheckConstraint("buyer_unread_count >= 0", name="buyer_unread_non_negative_check"),
        CheckConstraint("seller_unread_count >= 0", name="seller_unread_non_negative_check"),
        CheckConstraint("buyer_id != seller_id", name="no_self_chat_check"),
        # At most one active chat per listing and participant pair
        Index(
            "uq_chats_active_listing_participants",
            "listing_id",
            "participant_key",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_chats_buyer_id", "buyer_id"),
        Index("ix_chats_seller_id", "seller_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    participant_key: Mapped[str] = mapped_column(String(80), nullable=False)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    blocked_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="SET NULL")
    )

    # Metadata
    last_message_at: Mapped[datetime] = mapped_column(DateTime(True), default=utc_now, nullable=False)
    last_message_preview: Mapped[Optional[str]] = mapped_column(String(100))
    buyer_unread_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    seller_unread_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=utc_now,
        nullable=False
    )

    messages: Mapped[List["Message"]] = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan"
    )

    @property
    def participant_ids(self) -> List[uuid.UUID]:
        return [self.buyer_id, self.seller_id]

    def is_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.buyer_id, self.seller_id)

    def other_participant(self, user_id: uuid.UUID) -> Optional[uuid.UUID]:
        if user_id == self.buyer_id:
            return self.seller_id
        if user_id == self.seller_id:
            return self.buyer_id
        return None

    def unread_count_for(self, user_id: uuid.UUID) -> int:
        if user_id == self.buyer_id:
            return self.buyer_unread_count or 0
        if user_id == self.seller_id:
            return self.seller_unread_count or 0
        return 0

    def unread_column_for(self, user_id: uuid.UUID):
        """Counter column of the given participant, for increments done in SQL"""
        if user_id == self.buyer_id:
            return Chat.buyer_unread_count
        if user_id == self.seller_id:
            return Chat.seller_unread_count
        return None

    def reset_unread(self, user_id: uuid.UUID) -> None:
        if user_id == self.buyer_id:
            self.buyer_unread_count = 0
        elif user_id == self.seller_id:
            self.seller_unread_count = 0

    @property
    def unread_counts(self) -> Dict[str, int]:
        return {
            str(self.buyer_id): self.buyer_unread_count or 0,
            str(self.seller_id): self.seller_unread_count or 0,
        }


class Message(Base):
    """
    A message inside a chat. Never hard-deleted; is_deleted hides it.
    """
    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    chat_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("chats.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False
    )

    # Content
    body: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), default="text", nullable=False)  # "text", "image", "location", "system"
    image_url: Mapped[Optional[str]] = mapped_column(String(500))
    system_message_type: Mapped[Optional[str]] = mapped_column(String(50))  # "chat_started", "listing_sold", "listing_expired"

    # Status
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(True))
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )

    chat: Mapped["Chat"] = relationship("Chat", back_populates="messages")


class Notification(Base):
    """
    Per-user in-app notification created as a side effect of a domain event
    """
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)  # recipient, not verified to exist

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    type: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(50))

    related_id: Mapped[Optional[str]] = mapped_column(String(100))
    related_type: Mapped[Optional[str]] = mapped_column(String(50))
    notification_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSONType)
    action_url: Mapped[Optional[str]] = mapped_column(String(500))

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(True))
    priority: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)

    sender_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
