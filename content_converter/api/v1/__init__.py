"""API v1 router and endpoint organization."""

from fastapi import APIRouter

from content_converter.api.v1 import conversions

router = APIRouter(tags=["v1"])

router.include_router(conversions.router, prefix="/conversions", tags=["Conversions"])

__all__ = ["router"]
