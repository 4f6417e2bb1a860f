from fastapi import APIRouter

from modelforge.api.v1.endpoints import analysis, generation, handoff, jobs

api_router = APIRouter()

api_router.include_router(generation.router, prefix="", tags=["generation"])
api_router.include_router(analysis.router, prefix="", tags=["analysis"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(handoff.router, prefix="", tags=["handoff"])
