from fastapi import APIRouter

from .endpoints import messages, health

api_router = APIRouter()

api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
