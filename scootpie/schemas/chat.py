from __future__ import annotations

from typing import Literal

from scootpie.schemas.base import CamelModel, UtcDatetime


class OutfitItem(CamelModel):
    name: str
    image_url: str = ""
    product_url: str = "#"
    price: float | None = None
    currency: str | None = None
    brand: str | None = None
    retailer: str | None = None
    category: str = "other"


class ChatRequest(CamelModel):
    message: str = ""
    conversation_id: str | None = None
    prior_items: list[OutfitItem] | None = None
    prior_outfit_image: str | None = None


class ChatMessageOut(CamelModel):
    id: str
    role: Literal["user", "assistant"] = "assistant"
    content: str
    outfit_image: str | None = None
    products: list[OutfitItem]
    timestamp: UtcDatetime


class ChatResponse(CamelModel):
    success: bool = True
    message: ChatMessageOut
    conversation_id: str


class ConversationOut(CamelModel):
    id: str
    created_at: UtcDatetime
    last_message_at: UtcDatetime


class MessageOut(CamelModel):
    id: str
    role: str
    content: str
    outfit_image_url: str | None = None
    outfit_products: list[OutfitItem] | None = None
    product_recommendations: list[str] | None = None
    created_at: UtcDatetime


class ConversationListResponse(CamelModel):
    success: bool = True
    conversations: list[ConversationOut]


class ConversationDetailResponse(CamelModel):
    success: bool = True
    conversation: ConversationOut | None = None
    messages: list[MessageOut]


class DeleteResponse(CamelModel):
    success: bool = True
