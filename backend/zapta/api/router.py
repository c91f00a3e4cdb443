from fastapi import APIRouter

from zapta.api import agents, chat, health, knowledge, usage

api_router = APIRouter(prefix="/api")

api_router.include_router(health.router)
api_router.include_router(agents.router)
api_router.include_router(chat.router)
api_router.include_router(knowledge.router)
api_router.include_router(usage.router)
