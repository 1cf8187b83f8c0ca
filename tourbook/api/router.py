"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from tourbook.api.routes import admin, bookings, payments, tours, users

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(users.router)
api_router.include_router(tours.router)
api_router.include_router(bookings.router)
api_router.include_router(admin.router)
api_router.include_router(payments.router)
