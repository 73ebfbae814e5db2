"""
Read-side joins of orders, chats and messages with their listing, master item
and participant profiles. Any joined row may be gone; it becomes None instead
of failing the query.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from models import UserProfile, Listing, MasterItem, Order, Chat, Message
from utils.response_helpers import (
    order_to_dict, chat_to_dict, message_to_dict,
    user_summary, master_item_summary
)
from typing import Any, Dict, Optional
import uuid


async def _get(db: AsyncSession, model, entity_id: Optional[uuid.UUID]):
    if entity_id is None:
        return None
    return await db.get(model, entity_id)


async def project_order(db: AsyncSession, order: Order, viewer_id: uuid.UUID) -> Dict[str, Any]:
    listing = await _get(db, Listing, order.listing_id)
    master_item = await _get(db, MasterItem, order.master_item_id)
    buyer = await _get(db, UserProfile, order.buyer_id)
    seller = await _get(db, UserProfile, order.seller_id)

    projected = order_to_dict(order)
    projected.update({
        'user_role': 'buyer' if order.buyer_id == viewer_id else 'seller',
        'listing': {
            'id': str(listing.id),
            'image_url': listing.image_url,
            'description': listing.description,
            'is_active': listing.is_active
        } if listing else None,
        'master_item': master_item_summary(master_item),
        'buyer': user_summary(buyer, 'phone', 'shop_name', 'image_url'),
        'seller': user_summary(seller, 'phone', 'shop_name', 'shop_address', 'image_url')
    })
    return projected


async def project_chat(db: AsyncSession, chat: Chat, viewer_id: uuid.UUID) -> Dict[str, Any]:
    """Chat list entry: listing card, the other participant and the viewer's unread count"""
    listing = await _get(db, Listing, chat.listing_id)
    master_item = await _get(db, MasterItem, listing.master_item_id) if listing else None
    other = await _get(db, UserProfile, chat.other_participant(viewer_id))

    projected = chat_to_dict(chat)
    projected.update({
        'listing': {
            'id': str(listing.id),
            'master_item_id': str(listing.master_item_id),
            'price': listing.price,
            'unit': listing.unit,
            'image_url': listing.image_url,
            'master_item': {
                'name': master_item.name,
                'category': master_item.category
            } if master_item else None
        } if listing else None,
        'other_participant': user_summary(other, 'image_url'),
        'unread_count': chat.unread_count_for(viewer_id)
    })
    return projected


async def project_chat_detail(db: AsyncSession, chat: Chat) -> Optional[Dict[str, Any]]:
    """Full chat header; None when the listing behind it is gone"""
    listing = await _get(db, Listing, chat.listing_id)
    if not listing:
        return None

    master_item = await _get(db, MasterItem, listing.master_item_id)
    seller = await _get(db, UserProfile, listing.seller_id)

    projected = chat_to_dict(chat)
    projected['listing'] = {
        'id': str(listing.id),
        'master_item_id': str(listing.master_item_id),
        'seller_id': str(listing.seller_id),
        'price': listing.price,
        'quantity': listing.quantity,
        'unit': listing.unit,
        'image_url': listing.image_url,
        'master_item': master_item_summary(master_item),
        'seller': user_summary(seller, 'phone', 'shop_name', 'shop_address', 'image_url')
    }
    return projected


async def enrich_message(db: AsyncSession, message: Message) -> Dict[str, Any]:
    sender = await _get(db, UserProfile, message.sender_id)
    projected = message_to_dict(message)
    projected['sender'] = user_summary(sender, 'image_url')
    return projected
