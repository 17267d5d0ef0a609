from __future__ import annotations

from fastapi import APIRouter

from scootpie.api.v1.endpoints import chat
from scootpie.api.v1.endpoints import products
from scootpie.api.v1.endpoints import profiles

api_router = APIRouter(prefix="/v1")
api_router.include_router(chat.router, tags=["chat"])
api_router.include_router(products.router, tags=["products"])
api_router.include_router(profiles.router, tags=["profiles"])
