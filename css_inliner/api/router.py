"""API router aggregator."""

from fastapi import APIRouter

from css_inliner.api.routes import critical_path, inline

api_router = APIRouter()
api_router.include_router(inline.router)
api_router.include_router(critical_path.router)
