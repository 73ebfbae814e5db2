"""
Response helper utilities for handling UUID conversions and model serialization
"""
from typing import Any, Dict, Optional
import uuid
from pydantic import BaseModel


def convert_uuids_to_strings(obj: Any) -> Any:
    """
    Recursively convert UUID objects to strings in any data structure
    """
    if isinstance(obj, uuid.UUID):
        return str(obj)
    elif isinstance(obj, dict):
        return {key: convert_uuids_to_strings(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [convert_uuids_to_strings(item) for item in obj]
    else:
        return obj


def safe_model_validate(model_class: BaseModel, data: Any) -> BaseModel:
    """
    Validate a response model from a plain dict, converting UUIDs to strings first
    """
    return model_class.model_validate(convert_uuids_to_strings(data))


def _id(value: Optional[uuid.UUID]) -> Optional[str]:
    return str(value) if value else None


# Summaries embedded in projections
def user_summary(user_profile, *fields: str) -> Optional[Dict[str, Any]]:
    """id and name always, plus whichever extra profile fields are asked for"""
    if user_profile is None:
        return None
    summary = {'id': str(user_profile.id), 'name': user_profile.name}
    for field in fields:
        summary[field] = getattr(user_profile, field)
    return summary


def master_item_summary(master_item, include_image: bool = True) -> Optional[Dict[str, Any]]:
    if master_item is None:
        return None
    summary = {
        'id': str(master_item.id),
        'name': master_item.name,
        'category': master_item.category
    }
    if include_image:
        summary['image_url'] = master_item.image_url
    return summary


def user_profile_to_dict(user_profile) -> Dict[str, Any]:
    """Convert UserProfile model to dict with string UUIDs"""
    return {
        'id': str(user_profile.id),
        'user_id': str(user_profile.user_id),
        'email': user_profile.email,
        'name': user_profile.name,
        'phone': user_profile.phone,
        'image_url': user_profile.image_url,
        'shop_name': user_profile.shop_name,
        'shop_address': user_profile.shop_address,
        'role': user_profile.role,
        'account_type': user_profile.account_type,
        'is_active': user_profile.is_active,
        'created_at': user_profile.created_at,
        'updated_at': user_profile.updated_at
    }


def order_to_dict(order) -> Dict[str, Any]:
    """Convert Order model to dict with string UUIDs"""
    return {
        'id': str(order.id),
        'listing_id': str(order.listing_id),
        'buyer_id': str(order.buyer_id),
        'seller_id': str(order.seller_id),
        'master_item_id': str(order.master_item_id),
        'quantity': order.quantity,
        'unit': order.unit,
        'price_per_unit': order.price_per_unit,
        'total_amount': order.total_amount,
        'contact_method': order.contact_method,
        'delivery_address': order.delivery_address,
        'preferred_time': order.preferred_time,
        'buyer_message': order.buyer_message,
        'buyer_phone': order.buyer_phone,
        'buyer_name': order.buyer_name,
        'status': order.status,
        'seller_response': order.seller_response,
        'rejection_reason': order.rejection_reason,
        'responded_at': order.responded_at,
        'completed_at': order.completed_at,
        'completion_notes': order.completion_notes,
        'created_at': order.created_at,
        'updated_at': order.updated_at
    }


def chat_to_dict(chat) -> Dict[str, Any]:
    """Convert Chat model to dict with string UUIDs"""
    return {
        'id': str(chat.id),
        'listing_id': str(chat.listing_id),
        'buyer_id': str(chat.buyer_id),
        'seller_id': str(chat.seller_id),
        'participants': [str(participant) for participant in chat.participant_ids],
        'is_active': chat.is_active,
        'is_blocked': chat.is_blocked,
        'blocked_by': _id(chat.blocked_by),
        'last_message_at': chat.last_message_at,
        'last_message_preview': chat.last_message_preview,
        'unread_counts': chat.unread_counts,
        'created_at': chat.created_at,
        'updated_at': chat.updated_at
    }


def message_to_dict(message) -> Dict[str, Any]:
    """Convert Message model to dict with string UUIDs"""
    return {
        'id': str(message.id),
        'chat_id': str(message.chat_id),
        'sender_id': str(message.sender_id),
        'body': message.body,
        'message_type': message.message_type,
        'image_url': message.image_url,
        'system_message_type': message.system_message_type,
        'is_read': message.is_read,
        'read_at': message.read_at,
        'is_deleted': message.is_deleted,
        'created_at': message.created_at
    }


def notification_to_dict(notification) -> Dict[str, Any]:
    """Convert Notification model to dict with string UUIDs"""
    return {
        'id': str(notification.id),
        'user_id': str(notification.user_id),
        'title': notification.title,
        'message': notification.message,
        'type': notification.type,
        'category': notification.category,
        'related_id': notification.related_id,
        'related_type': notification.related_type,
        'metadata': notification.notification_metadata,
        'action_url': notification.action_url,
        'is_read': notification.is_read,
        'read_at': notification.read_at,
        'priority': notification.priority,
        'sender_id': _id(notification.sender_id),
        'created_at': notification.created_at
    }
