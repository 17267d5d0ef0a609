from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from scootpie.core.config import Settings
from scootpie.core.context import conversation_id_ctx, user_id_ctx
from scootpie.models import Conversation, Message, User
from scootpie.schemas.chat import ChatRequest, OutfitItem
from scootpie.schemas.profile import Preferences
from scootpie.services.categories import infer_item_category, normalize_category
from scootpie.services.conversations import get_owned_conversation, last_outfit_state
from scootpie.services.gemini import GeminiQueryParser, QueryParser
from scootpie.services.outfit import TryOnPlan, had_replacement, merge_outfit_items, plan_try_on
from scootpie.services.product_search import ProductSearchAdapter
from scootpie.services.profiles import load_preferences, primary_photo_for
from scootpie.services.query_extractor import ProductRequest, extract_product_requests, parse_user_query
from scootpie.services.ranking import pick_best_product
from scootpie.services.replies import compose_reply
from scootpie.services.tryon import TryOnGenerator, build_try_on_generator

logger = logging.getLogger(__name__)


class ChatTurnError(RuntimeError):
    """Base class for errors that end a chat turn before any search runs."""


class MessageRequiredError(ChatTurnError):
    pass


class ChatPreconditionError(ChatTurnError):
    code = "PRECONDITION_FAILED"
    redirect_to = "/profile"


class PhotoRequiredError(ChatPreconditionError):
    code = "PHOTO_REQUIRED"

    def __init__(self) -> None:
        super().__init__("No photos found. Please upload a photo first.")


class GenderRequiredError(ChatPreconditionError):
    code = "GENDER_REQUIRED"

    def __init__(self) -> None:
        super().__init__("Gender preference is required for virtual try-on. Please update your profile.")


@dataclass(slots=True)
class ChatComponents:
    query_parser: QueryParser
    search: ProductSearchAdapter
    try_on: TryOnGenerator

    @classmethod
    def from_settings(cls, db: Session, cfg: Settings) -> "ChatComponents":
        return cls(
            query_parser=GeminiQueryParser.from_settings(cfg),
            search=ProductSearchAdapter.from_settings(db, cfg),
            try_on=build_try_on_generator(cfg),
        )


@dataclass(slots=True)
class ChatTurnResult:
    conversation: Conversation
    message: Message
    products: list[OutfitItem]
    outfit_image: str | None
    plan: TryOnPlan | None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _resolve_conversation(db: Session, user: User, conversation_id: str | None) -> Conversation:
    if conversation_id:
        return get_owned_conversation(db, user, conversation_id)
    conversation = Conversation(user_id=user.id)
    db.add(conversation)
    db.flush()
    logger.info("conversation_created conversation_id=%s", conversation.id)
    return conversation


def _prior_state(conversation: Conversation, payload: ChatRequest) -> tuple[list[OutfitItem], str | None]:
    if payload.prior_items is not None:
        return list(payload.prior_items), payload.prior_outfit_image
    # Clients that omit priorItems continue from the last persisted outfit.
    return last_outfit_state(conversation)


def choose_item(
    search: ProductSearchAdapter,
    request: ProductRequest,
    message: str,
    preferences: Preferences,
) -> OutfitItem | None:
    candidates = search.search_with_relaxation(request, preferences)
    if not candidates:
        return None

    terms = request if request.has_fields() else parse_user_query(request.query)
    product = pick_best_product(candidates, terms.brand, terms.color, terms.category)
    if product is None:
        return None

    category = request.category
    if not category or category == "search":
        category = infer_item_category(product.name, message)

    logger.info(
        "chat_item_chosen name=%s category=%s normalized=%s external=%s has_image=%s",
        product.name,
        category,
        normalize_category(category),
        product.is_external,
        bool(product.image_url),
    )
    return OutfitItem(
        name=product.name or "Item",
        image_url=product.image_url or "",
        product_url=product.product_url or "#",
        price=product.price,
        currency=product.currency,
        brand=product.brand,
        retailer=product.retailer,
        category=category or "other",
    )


def run_chat_turn(db: Session, user: User, payload: ChatRequest, components: ChatComponents) -> ChatTurnResult:
    message_text = payload.message
    if not message_text.strip():
        raise MessageRequiredError("Message is required")

    photo = primary_photo_for(user)
    if photo is None:
        raise PhotoRequiredError()

    preferences = load_preferences(user)
    if not preferences.gender or preferences.gender == "prefer-not-to-say":
        raise GenderRequiredError()

    conversation = _resolve_conversation(db, user, payload.conversation_id)
    user_token = user_id_ctx.set(user.id)
    token = conversation_id_ctx.set(conversation.id)
    try:
        prior_items, prior_image = _prior_state(conversation, payload)
        logger.info(
            "chat_turn_started prior_items=%d has_prior_image=%s",
            len(prior_items),
            bool(prior_image),
        )

        conversation.messages.append(Message(role="user", content=message_text))
        conversation.last_message_at = _now()
        db.commit()

        requests = extract_product_requests(message_text, components.query_parser)
        incoming: list[OutfitItem] = []
        for request in requests:
            item = choose_item(components.search, request, message_text, preferences)
            if item is None:
                logger.warning("chat_request_unresolved query=%s", request.query)
                continue
            incoming.append(item)

        merged = merge_outfit_items(prior_items, incoming)
        plan = plan_try_on(prior_items, incoming, merged, prior_image, photo.url)

        outfit_image: str | None = None
        persisted_image: str | None = None
        if plan is None:
            logger.info("tryon_skipped_no_items_with_images")
            if not had_replacement(prior_items, incoming):
                # nothing new was drawn, so the previous composite still shows the outfit
                persisted_image = prior_image
        else:
            result = components.try_on.generate(plan.base_image, plan.items)
            if result.success and result.image_url:
                outfit_image = persisted_image = result.image_url
            else:
                logger.warning("tryon_no_image error=%s", result.error)

        reply = compose_reply(message_text, merged, incoming, prior_items, preferences.gender)
        assistant = Message(
            role="assistant",
            content=reply,
            product_recommendations=[i.name for i in merged] if merged else None,
            outfit_image_url=persisted_image,
            outfit_products=[i.model_dump(by_alias=True, mode="json") for i in merged] if merged else None,
        )
        conversation.messages.append(assistant)
        db.flush()
        conversation.last_message_at = assistant.created_at
        db.commit()
        db.refresh(assistant)

        logger.info(
            "chat_turn_done requests=%d incoming=%d merged=%d image=%s",
            len(requests),
            len(incoming),
            len(merged),
            bool(outfit_image),
        )
        return ChatTurnResult(
            conversation=conversation,
            message=assistant,
            products=merged,
            outfit_image=outfit_image,
            plan=plan,
        )
    finally:
        conversation_id_ctx.reset(token)
        user_id_ctx.reset(user_token)
