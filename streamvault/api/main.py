from fastapi import APIRouter

from streamvault.api.routes import admin, videos

api_router = APIRouter()
api_router.include_router(videos.router)
api_router.include_router(admin.router)
