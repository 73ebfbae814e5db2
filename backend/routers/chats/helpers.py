from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models import Chat, Message, make_participant_key, utc_now
from .schemas import MessageType, SystemMessageType
from typing import Optional
import uuid

CHAT_STARTED_PREVIEW = "Chat started"
CHAT_STARTED_BODY = "Chat started for this listing"
PREVIEW_LENGTH = 100
MESSAGE_HISTORY_LIMIT = 50


class ChatHelpers:
    """Lookups and state changes shared by the chat endpoints"""

    async def get_chat_or_404(self, db: AsyncSession, chat_id: uuid.UUID) -> Chat:
        chat = await db.get(Chat, chat_id)
        if not chat:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Chat not found"
            )
        return chat

    def ensure_participant(self, chat: Chat, user_id: Optional[uuid.UUID], detail: str) -> uuid.UUID:
        if user_id is None or not chat.is_participant(user_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=detail
            )
        return user_id

    async def find_active_chat(
        self,
        db: AsyncSession,
        listing_id: uuid.UUID,
        buyer_id: uuid.UUID,
        seller_id: uuid.UUID
    ) -> Optional[Chat]:
        """Active chat for the listing and the unordered participant pair"""
        result = await db.execute(
            select(Chat).where(
                Chat.listing_id == listing_id,
                Chat.participant_key == make_participant_key(buyer_id, seller_id),
                Chat.is_active.is_(True)
            )
        )
        return result.scalars().first()

    def start_chat(self, listing_id: uuid.UUID, buyer_id: uuid.UUID, seller_id: uuid.UUID) -> Chat:
        """New active chat seeded with its chat_started system message"""
        chat = Chat(
            listing_id=listing_id,
            buyer_id=buyer_id,
            seller_id=seller_id,
            participant_key=make_participant_key(buyer_id, seller_id),
            is_active=True,
            is_blocked=False,
            last_message_at=utc_now(),
            last_message_preview=CHAT_STARTED_PREVIEW,
            buyer_unread_count=0,
            seller_unread_count=0
        )
        chat.messages.append(Message(
            sender_id=buyer_id,
            body=CHAT_STARTED_BODY,
            message_type=MessageType.SYSTEM.value,
            system_message_type=SystemMessageType.CHAT_STARTED.value,
            is_read=False
        ))
        return chat

    def build_preview(self, body: str, message_type: str) -> str:
        if message_type == MessageType.TEXT.value:
            return body[:PREVIEW_LENGTH]
        return f"Sent {message_type}"


chat_helpers = ChatHelpers()
