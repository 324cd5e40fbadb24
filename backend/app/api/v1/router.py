from fastapi import APIRouter
from app.api.v1.endpoints import auth, health, public, resources, seminars
from app.api.v1.endpoints.admin import admin_router

api_router = APIRouter()

# Deep health check endpoints (/health/live, /health/ready)
api_router.include_router(health.router)


@api_router.get("/health", tags=["Health"])
async def health_check():
    """Simple health check endpoint for load balancer"""
    return {"status": "healthy", "service": "encg-portal"}


api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(resources.router, prefix="/resources", tags=["Resources"])
api_router.include_router(seminars.router, prefix="/seminars", tags=["Seminars"])
api_router.include_router(public.router, prefix="/public", tags=["Public"])
api_router.include_router(admin_router)
