from fastapi import APIRouter

from queue_service.api.v1.endpoints import (
    # Ticket lifecycle, capacity and analytics
    tickets,
)


api_router = APIRouter(prefix="/api/v1")

api_router.include_router(
    tickets.router,
    prefix="/tickets",
    tags=["Queue Tickets"]
)
