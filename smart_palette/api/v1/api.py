"""
API router for version 1 of the API.
"""
from fastapi import APIRouter

from smart_palette.api.v1.endpoints import color_palette

api_router = APIRouter()

api_router.include_router(color_palette.router, prefix="/color-palette", tags=["color-palette"])
