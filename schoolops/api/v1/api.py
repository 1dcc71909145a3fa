"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from schoolops.api.v1.endpoints import announcements, auth, settings, two_factor, users

api_router = APIRouter()

# Auth (login, refresh, logout, me) and two-factor enrollment
api_router.include_router(auth.router)
api_router.include_router(two_factor.router)

# User management
api_router.include_router(users.router)

# Institution profile & settings
api_router.include_router(settings.router)

# Announcements + realtime feed
api_router.include_router(announcements.router)
