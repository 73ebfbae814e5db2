from fastapi import APIRouter, Depends, HTTPException, status, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, update, or_
from config import get_db
from models import Chat, Message, Listing, MasterItem, UserProfile, utc_now
from routers.auth.auth import get_current_user
from dependencies.rbac import require_chats_read, require_chats_write
from utils.response_helpers import safe_model_validate
from utils.projections import project_chat, project_chat_detail, enrich_message
from utils.notifications import dispatch_notification, get_message_received_notification
from .schemas import (
    ChatCreate, MessageCreate, ChatBlockUpdate, ChatCreateResponse, MessageCreateResponse,
    ChatActionResponse, MarkReadResponse, MessageResponse, ChatListItemResponse, ChatDetailResponse
)
from .helpers import chat_helpers, MESSAGE_HISTORY_LIMIT
from typing import List, Optional
import uuid
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chats", tags=["Chats"])


@router.post("/", response_model=ChatCreateResponse)
async def create_or_get_chat(
    chat_data: ChatCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_chats_write)
):
    """
    Return the active chat between buyer and seller for a listing, starting one if needed
    """
    try:
        if current_user["profile_id"] not in (chat_data.buyer_id, chat_data.seller_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Unauthorized to create this chat"
            )

        listing = await db.get(Listing, chat_data.listing_id)
        if not listing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Listing not found"
            )

        if chat_data.buyer_id == chat_data.seller_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You cannot start a chat with yourself"
            )

        if chat_data.seller_id != listing.seller_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Seller does not own this listing"
            )

        buyer = await db.get(UserProfile, chat_data.buyer_id)
        if not buyer:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Buyer not found"
            )

        existing_chat = await chat_helpers.find_active_chat(
            db, chat_data.listing_id, chat_data.buyer_id, chat_data.seller_id
        )
        if existing_chat:
            return ChatCreateResponse(chat_id=str(existing_chat.id))

        chat = chat_helpers.start_chat(chat_data.listing_id, chat_data.buyer_id, chat_data.seller_id)
        db.add(chat)
        try:
            await db.commit()
        except IntegrityError:
            # Lost the race against a concurrent creator; hand back its chat
            await db.rollback()
            existing_chat = await chat_helpers.find_active_chat(
                db, chat_data.listing_id, chat_data.buyer_id, chat_data.seller_id
            )
            if not existing_chat:
                raise
            return ChatCreateResponse(chat_id=str(existing_chat.id))

        logger.info(f"Chat {chat.id} started on listing {chat.listing_id}")
        return ChatCreateResponse(chat_id=str(chat.id))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating chat: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create chat"
        )


@router.get("/my-chats", response_model=List[ChatListItemResponse])
async def get_my_chats(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_chats_read)
):
    """
    Active chats the caller takes part in, newest chat first
    """
    profile_id = current_user["profile_id"]
    if not profile_id:
        return []

    try:
        result = await db.execute(
            select(Chat)
            .where(
                Chat.is_active.is_(True),
                or_(Chat.buyer_id == profile_id, Chat.seller_id == profile_id)
            )
            .order_by(Chat.created_at.desc())
        )
        chats = result.scalars().all()

        return [
            safe_model_validate(ChatListItemResponse, await project_chat(db, chat, profile_id))
            for chat in chats
        ]

    except Exception as e:
        logger.error(f"Error getting chats: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve chats"
        )


@router.get("/{chat_id}", response_model=Optional[ChatDetailResponse])
async def get_chat_by_id(
    chat_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_chats_read)
):
    """
    Chat header with the listing and seller card; null if the chat or listing is gone
    """
    try:
        chat = await db.get(Chat, chat_id)
        if not chat:
            return None

        chat_helpers.ensure_participant(chat, current_user["profile_id"], "Unauthorized to view this chat")

        projected = await project_chat_detail(db, chat)
        if projected is None:
            return None
        return safe_model_validate(ChatDetailResponse, projected)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting chat {chat_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve chat"
        )


@router.post("/{chat_id}/messages", response_model=MessageCreateResponse)
async def send_message(
    chat_id: uuid.UUID,
    message_data: MessageCreate,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_chats_write)
):
    """
    Post a message and bump the counterpart's unread count
    """
    try:
        chat = await chat_helpers.get_chat_or_404(db, chat_id)
        sender_id = chat_helpers.ensure_participant(
            chat, current_user["profile_id"], "Unauthorized to send message in this chat"
        )

        if not chat.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot send message to inactive chat"
            )

        if chat.is_blocked:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot send message to blocked chat"
            )

        sender = await db.get(UserProfile, sender_id)
        listing = await db.get(Listing, chat.listing_id)
        master_item = await db.get(MasterItem, listing.master_item_id) if listing else None

        message_type = message_data.message_type.value
        message = Message(
            chat_id=chat.id,
            sender_id=sender_id,
            body=message_data.body,
            message_type=message_type,
            image_url=message_data.image_url,
            is_read=False
        )
        db.add(message)

        recipient_id = chat.other_participant(sender_id)
        chat_values = {
            Chat.last_message_at: utc_now(),
            Chat.last_message_preview: chat_helpers.build_preview(message_data.body, message_type)
        }
        unread_column = chat.unread_column_for(recipient_id)
        if unread_column is not None:
            # Incremented in the UPDATE itself; every concurrent send must be counted
            chat_values[unread_column] = unread_column + 1
        await db.execute(
            update(Chat)
            .where(Chat.id == chat.id)
            .values(chat_values)
            .execution_options(synchronize_session=False)
        )

        await db.commit()

        background_tasks.add_task(
            dispatch_notification,
            get_message_received_notification(
                chat.id,
                recipient_id,
                sender_id,
                sender.name if sender else None,
                master_item.name if master_item else None,
                message_data.body
            )
        )

        logger.info(f"Message {message.id} sent in chat {chat.id}")
        return MessageCreateResponse(message_id=str(message.id))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error sending message in chat {chat_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send message"
        )


@router.get("/{chat_id}/messages", response_model=List[MessageResponse])
async def get_chat_messages(
    chat_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_chats_read)
):
    """
    The most recent messages of a chat, oldest first
    """
    try:
        chat = await chat_helpers.get_chat_or_404(db, chat_id)
        chat_helpers.ensure_participant(chat, current_user["profile_id"], "Unauthorized to view this chat")

        result = await db.execute(
            select(Message)
            .where(Message.chat_id == chat.id, Message.is_deleted.is_(False))
            .order_by(Message.created_at.desc())
            .limit(MESSAGE_HISTORY_LIMIT)
        )
        messages = list(reversed(result.scalars().all()))

        return [
            safe_model_validate(MessageResponse, await enrich_message(db, message))
            for message in messages
        ]

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting messages for chat {chat_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve messages"
        )


@router.post("/{chat_id}/read", response_model=MarkReadResponse)
async def mark_messages_as_read(
    chat_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_chats_write)
):
    """
    Reset the caller's unread count and mark the counterpart's messages read
    """
    try:
        chat = await chat_helpers.get_chat_or_404(db, chat_id)
        reader_id = chat_helpers.ensure_participant(
            chat, current_user["profile_id"], "Unauthorized to mark messages as read"
        )

        chat.reset_unread(reader_id)
        result = await db.execute(
            update(Message)
            .where(
                Message.chat_id == chat.id,
                Message.sender_id != reader_id,
                Message.is_read.is_(False)
            )
            .values(is_read=True, read_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        marked_count = result.rowcount or 0
        await db.commit()

        return MarkReadResponse(marked_count=marked_count)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error marking messages read in chat {chat_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to mark messages as read"
        )


@router.put("/{chat_id}/block", response_model=ChatActionResponse)
async def toggle_chat_block(
    chat_id: uuid.UUID,
    block_data: ChatBlockUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_chats_write)
):
    """
    Block or unblock a chat for both participants
    """
    try:
        chat = await chat_helpers.get_chat_or_404(db, chat_id)
        user_id = chat_helpers.ensure_participant(
            chat, current_user["profile_id"], "Unauthorized to modify this chat"
        )

        chat.is_blocked = block_data.is_blocked
        chat.blocked_by = user_id if block_data.is_blocked else None
        await db.commit()

        logger.info(f"Chat {chat.id} {'blocked' if block_data.is_blocked else 'unblocked'} by {user_id}")
        return ChatActionResponse()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating block state of chat {chat_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update chat"
        )
