from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from scootpie.api.deps import get_chat_components, get_current_user, get_db
from scootpie.models import Conversation, Message, User
from scootpie.schemas.chat import (
    ChatMessageOut,
    ChatRequest,
    ChatResponse,
    ConversationDetailResponse,
    ConversationListResponse,
    ConversationOut,
    DeleteResponse,
    MessageOut,
)
from scootpie.services.chat import (
    ChatComponents,
    ChatPreconditionError,
    MessageRequiredError,
    run_chat_turn,
)
from scootpie.services.conversations import (
    ConversationNotFoundError,
    delete_conversation,
    get_owned_conversation,
    latest_conversation,
    list_conversations,
    stored_outfit,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _conversation_out(c: Conversation) -> ConversationOut:
    return ConversationOut(id=c.id, created_at=c.created_at, last_message_at=c.last_message_at)


def _not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Conversation not found"})


def _message_out(m: Message) -> MessageOut:
    return MessageOut(
        id=m.id,
        role=m.role,
        content=m.content,
        outfit_image_url=m.outfit_image_url,
        outfit_products=stored_outfit(m) if m.outfit_products else None,
        product_recommendations=m.product_recommendations,
        created_at=m.created_at,
    )


@router.post("/chat", response_model=ChatResponse)
def post_chat(
    payload: ChatRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    components: ChatComponents = Depends(get_chat_components),
):
    try:
        result = run_chat_turn(db, user, payload, components)
    except MessageRequiredError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except ChatPreconditionError as exc:
        return JSONResponse(
            status_code=400,
            content={"error": str(exc), "code": exc.code, "redirectTo": exc.redirect_to},
        )
    except ConversationNotFoundError:
        return _not_found()
    except Exception as exc:
        logger.exception("chat_turn_failed")
        db.rollback()
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to process chat message", "details": str(exc)},
        )

    return ChatResponse(
        message=ChatMessageOut(
            id=result.message.id,
            content=result.message.content,
            outfit_image=result.outfit_image,
            products=result.products,
            timestamp=result.message.created_at,
        ),
        conversation_id=result.conversation.id,
    )


@router.get("/chat", response_model=ConversationListResponse | ConversationDetailResponse)
def get_chat(
    conversation_id: str | None = Query(default=None, alias="conversationId"),
    list_all: bool = Query(default=False, alias="all"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Conversation history, oldest message first.

    `all=true` lists the caller's conversations instead. Without `conversationId`
    the most recently active conversation is returned.
    """
    if list_all:
        return ConversationListResponse(conversations=[_conversation_out(c) for c in list_conversations(db, user)])

    if conversation_id:
        try:
            conversation = get_owned_conversation(db, user, conversation_id)
        except ConversationNotFoundError:
            return _not_found()
    else:
        conversation = latest_conversation(db, user)

    if conversation is None:
        return ConversationDetailResponse(conversation=None, messages=[])
    return ConversationDetailResponse(
        conversation=_conversation_out(conversation),
        messages=[_message_out(m) for m in conversation.messages],
    )


@router.delete("/chat", response_model=DeleteResponse)
def delete_chat(
    conversation_id: str | None = Query(default=None, alias="conversationId"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not conversation_id:
        return JSONResponse(status_code=400, content={"error": "conversationId is required"})
    try:
        delete_conversation(db, user, conversation_id)
    except ConversationNotFoundError:
        return _not_found()
    return DeleteResponse()
