"""Route modules mounted on the application under one router."""

from fastapi import APIRouter

from .breeding import router as breeding_router
from .lookups import router as lookups_router
from .market import router as market_router
from .pigeons import router as pigeons_router
from .racing import club_router, olr_router

api_router = APIRouter()

api_router.include_router(pigeons_router)
api_router.include_router(lookups_router)
api_router.include_router(breeding_router)
api_router.include_router(club_router)
api_router.include_router(olr_router)
api_router.include_router(market_router)
