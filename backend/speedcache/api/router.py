from fastapi import APIRouter

from speedcache.api import admin, health, reports

api_router = APIRouter()

api_router.include_router(reports.router, tags=["Reports"])
api_router.include_router(admin.router, tags=["Admin"])
api_router.include_router(health.router, tags=["Health"])
