"""
Shared dependencies for FastAPI routes
"""
from typing import Generator
from fastapi import Request
from sqlalchemy.orm import Session

from origination.database.session import get_session
from origination.services.orchestrator import ConversationOrchestrator
from origination.services.pricing import PricingEngine
from origination.services.webhooks import IdempotencyCache, WebhookService


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Yields a database session from the pool and ensures it's closed after use.
    """
    db = get_session()
    try:
        yield db
    finally:
        db.close()


# Process-scoped runtime objects are built by the lifespan and kept on app.state

def get_webhook_service(request: Request) -> WebhookService:
    return request.app.state.webhook_service


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    return request.app.state.orchestrator


def get_chat_dedup_cache(request: Request) -> IdempotencyCache:
    return request.app.state.chat_dedup_cache


def get_pricing_engine(request: Request) -> PricingEngine:
    return request.app.state.pricing
