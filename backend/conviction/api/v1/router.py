"""
API Version 1 Router

Consolidates all V1 API endpoints.
"""

from fastapi import APIRouter

from conviction.api.v1.endpoints import analysis, analyze, cohort

api_router = APIRouter()

api_router.include_router(analyze.router)
api_router.include_router(analysis.router)
api_router.include_router(cohort.router)


@api_router.get("/")
async def api_root():
    """API root endpoint"""
    return {"message": "Conviction Engine API v1"}
