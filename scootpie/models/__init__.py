from .all_models import (
    Conversation,
    Message,
    Photo,
    Product,
    User,
)

__all__ = [
    "User",
    "Photo",
    "Product",
    "Conversation",
    "Message",
]
