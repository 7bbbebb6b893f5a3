from fastapi import APIRouter

from app.routers import github, integrations

api_router = APIRouter()
api_router.include_router(integrations.router, prefix="/integrations", tags=["Integrations"])
api_router.include_router(github.router, prefix="/github", tags=["GitHub"])
