from fastapi import APIRouter
from package_search_api.services.search.app.endpoints import search

api_router = APIRouter()

# Paths are part of the emulated hosted-search contract, so no prefix
api_router.include_router(
    search.router,
    tags=["search"]
)
