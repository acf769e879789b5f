"""
Main API router for v1 endpoints
"""
from fastapi import APIRouter

from origination.api.v1.endpoints import contracts, simulation, webhooks

api_router = APIRouter()

# Include endpoint routers
api_router.include_router(webhooks.router, tags=["webhooks"])
api_router.include_router(contracts.router, tags=["contracts"])
api_router.include_router(simulation.router, tags=["simulation"])
