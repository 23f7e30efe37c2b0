from fastapi import APIRouter

from app.api.v1.endpoints import public, scheduling

api_router = APIRouter()

# Owner tooling: effective schedules, blocks, config invalidation, holidays
api_router.include_router(scheduling.router, prefix="/scheduling", tags=["scheduling"])

# Public booking endpoints (customer-facing)
api_router.include_router(public.router, prefix="/public", tags=["public"])
