from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from scootpie.models import Conversation, Message, User
from scootpie.schemas.chat import OutfitItem

logger = logging.getLogger(__name__)


class ConversationNotFoundError(LookupError):
    pass


def get_owned_conversation(db: Session, user: User, conversation_id: str) -> Conversation:
    conversation = (
        db.query(Conversation)
        .filter(Conversation.id == conversation_id, Conversation.user_id == user.id)
        .first()
    )
    if conversation is None:
        raise ConversationNotFoundError(conversation_id)
    return conversation


def latest_conversation(db: Session, user: User) -> Conversation | None:
    return (
        db.query(Conversation)
        .filter(Conversation.user_id == user.id)
        .order_by(Conversation.last_message_at.desc())
        .first()
    )


def list_conversations(db: Session, user: User) -> list[Conversation]:
    return (
        db.query(Conversation)
        .filter(Conversation.user_id == user.id)
        .order_by(Conversation.last_message_at.desc())
        .all()
    )


def delete_conversation(db: Session, user: User, conversation_id: str) -> None:
    conversation = get_owned_conversation(db, user, conversation_id)
    db.delete(conversation)
    db.commit()
    logger.info("conversation_deleted conversation_id=%s", conversation_id)


def stored_outfit(message: Message) -> list[OutfitItem]:
    rows = message.outfit_products or []
    return [OutfitItem.model_validate(row) for row in rows if isinstance(row, dict)]


def last_outfit_state(conversation: Conversation) -> tuple[list[OutfitItem], str | None]:
    """Outfit items and composite image from the newest assistant message."""
    for message in reversed(conversation.messages):
        if message.role == "assistant":
            return stored_outfit(message), message.outfit_image_url
    return [], None
