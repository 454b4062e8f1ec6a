# pyright: reportMissingImports=false
# pyright: reportUnknownArgumentType=false
# pyright: reportUnknownVariableType=false
from __future__ import annotations

from fastapi import APIRouter

from eduai.api.admin_performance import router as admin_performance_router
from eduai.api.admin_users import router as admin_users_router
from eduai.api.ai import router as ai_router
from eduai.api.auth import router as auth_router
from eduai.api.conversations import router as conversations_router
from eduai.api.credits import router as credits_router
from eduai.api.health import router as health_router
from eduai.api.notifications import router as notifications_router
from eduai.api.users import router as users_router


api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(health_router)
api_router.include_router(users_router)
api_router.include_router(notifications_router)
api_router.include_router(credits_router)
api_router.include_router(ai_router)
api_router.include_router(conversations_router)
api_router.include_router(admin_users_router)
api_router.include_router(admin_performance_router)
