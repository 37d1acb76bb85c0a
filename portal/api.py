"""API router: every JSON endpoint under the /api prefix."""

from fastapi import APIRouter

from .auth.routes import router as auth_router
from .companies.routes import router as companies_router
from .jobs.routes import router as jobs_router
from .locations.routes import router as locations_router
from .profiles.routes import router as profiles_router

api_router = APIRouter(prefix="/api")

api_router.include_router(auth_router)
api_router.include_router(profiles_router)
api_router.include_router(jobs_router)
api_router.include_router(companies_router)
api_router.include_router(locations_router)
