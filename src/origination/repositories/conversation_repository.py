"""
Conversation and message data access
"""
from typing import List, Optional

from origination.database.models import Conversation, Message
from origination.database.models.enums import MessageRole
from origination.repositories.base_repository import BaseRepository


class ConversationRepository(BaseRepository[Conversation]):
    model = Conversation

    def get_or_create_active(self, customer_id: int) -> Conversation:
        conversation = (
            self.db.query(Conversation)
            .filter(Conversation.customer_id == customer_id, Conversation.is_active.is_(True))
            .order_by(Conversation.id.desc())
            .first()
        )
        if conversation is None:
            conversation = self.create(customer_id=customer_id, is_active=True)
        return conversation

    def append_message(
        self,
        conversation_id: int,
        role: MessageRole,
        content: str,
        media_url: Optional[str] = None,
        media_type: Optional[str] = None,
        external_id: Optional[str] = None,
    ) -> Message:
        message = Message(
            conversation_id=conversation_id,
            role=role.value,
            content=content,
            media_url=media_url,
            media_type=media_type,
            external_id=external_id,
        )
        self.db.add(message)
        self.db.flush()
        return message

    def recent_messages(
        self,
        conversation_id: int,
        limit: int,
        exclude_id: Optional[int] = None,
    ) -> List[Message]:
        """
        The most recent `limit` customer and assistant messages, oldest first.
        System messages are never part of the history.
        """
        query = self.db.query(Message).filter(
            Message.conversation_id == conversation_id,
            Message.role != MessageRole.SYSTEM.value,
        )
        if exclude_id is not None:
            query = query.filter(Message.id != exclude_id)
        newest_first = query.order_by(Message.id.desc()).limit(limit).all()
        return list(reversed(newest_first))
