"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from dues_backend.app.api.v1.endpoints import admin, admin_billing, client_billing, notifications

router = APIRouter()

# Admin: clients, meetings, adjustments, advances, audit
router.include_router(admin.router)

# Admin: payment review
router.include_router(admin_billing.router)

# Client self-service
router.include_router(client_billing.router)

# Notifications (any authenticated user)
router.include_router(notifications.router)
