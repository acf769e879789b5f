"""
FastAPI Application Entry Point
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from origination.core.config import settings
from origination.api.v1.router import api_router
from origination.database.connection import DatabasePool
from origination.database.session import init_db, init_session_factory
from origination.external.chat.client import ChatGatewayClient
from origination.external.providers.bureau import HttpBureauProvider
from origination.external.providers.funder import FunderClient
from origination.external.providers.kyc import IdentityVerifierClient
from origination.external.providers.signer import SignerClient
from origination.services.credit import MockBureauProvider
from origination.services.llm_service import ReasoningService
from origination.services.orchestrator import ConversationOrchestrator, KeyedSerializer
from origination.services.pricing import PricingEngine
from origination.services.webhooks import IdempotencyCache, WebhookService
from origination.utils.logging import get_logger, app_logger
from origination.utils.prompt_manager import get_prompt_manager

logger = get_logger(__name__)


def build_runtime(app: FastAPI, session_factory) -> None:
    """
    Build the process-scoped services (serializer, caches, provider clients,
    orchestrator, webhook service) and keep them on app.state.
    """
    providers = settings.providers

    signer = SignerClient(providers.signer) if providers.signer.enabled else None
    funder = FunderClient(providers.funder) if providers.funder.enabled else None
    verifier = IdentityVerifierClient(providers.kyc) if providers.kyc.enabled else None
    bureau = HttpBureauProvider(providers.bureau) if providers.bureau.enabled else MockBureauProvider()
    pricing = PricingEngine(settings.loan)

    app.state.pricing = pricing
    app.state.chat_dedup_cache = IdempotencyCache(
        settings.webhooks.chat_dedup_ttl_seconds, settings.webhooks.idempotency_max_entries
    )
    app.state.webhook_service = WebhookService(
        session_factory,
        IdempotencyCache(settings.webhooks.idempotency_ttl_seconds, settings.webhooks.idempotency_max_entries),
        providers,
        signer=signer,
        funder=funder,
        verifier=verifier,
    )
    app.state.orchestrator = ConversationOrchestrator(
        session_factory=session_factory,
        reasoning=ReasoningService(settings.llm),
        chat=ChatGatewayClient(settings.chat),
        prompts=get_prompt_manager(settings.llm.prompts_file, settings.llm.prompt_versions),
        serializer=KeyedSerializer(settings.orchestrator.lock_ttl_seconds),
        bureau=bureau,
        pricing=pricing,
        signer=signer,
        funder=funder,
        verifier=verifier,
        config=settings,
    )

    enabled = [name for name in ("bureau", "kyc", "signer", "funder") if getattr(providers, name).enabled]
    app_logger.info(f"🔌 [cyan]Providers enabled:[/cyan] {', '.join(enabled) or 'none (development mode)'}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup and shutdown.
    Initializes database pool and runtime services on startup and closes the pool on shutdown.
    """
    # Startup
    app_logger.info("🚀 [bold green]Initializing application...[/bold green]")
    try:
        app_logger.info("📊 [cyan]Initializing database connection pool...[/cyan]")
        DatabasePool.initialize()
        session_factory = init_session_factory()
        if settings.database.create_tables:
            init_db()
        build_runtime(app, session_factory)
        app_logger.info("✅ [bold green]Application initialized successfully[/bold green]")
    except Exception as e:
        app_logger.error(f"❌ [bold red]Failed to initialize application:[/bold red] {e}")
        raise

    yield

    # Shutdown
    app_logger.info("🛑 [yellow]Shutting down application...[/yellow]")
    try:
        app_logger.info("📊 [cyan]Closing database connection pool...[/cyan]")
        DatabasePool.close()
        app_logger.info("✅ [bold green]Application shut down successfully[/bold green]")
    except Exception as e:
        app_logger.error(f"❌ [bold red]Error during application shutdown:[/bold red] {e}")


app = FastAPI(
    title=settings.project_name,
    version=settings.version,
    description=settings.description,
    openapi_url=f"{settings.api_v1_str}/openapi.json",
    lifespan=lifespan,
)

# CORS middleware
if settings.backend_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.backend_cors_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Include API router
app.include_router(api_router, prefix=settings.api_v1_str)


@app.get("/")
async def root():
    """Root endpoint"""
    return {"message": "Loan origination API is running", "version": settings.version}


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    pool_status = DatabasePool.get_pool_status()
    return {
        "status": "healthy" if pool_status["initialized"] else "starting",
        "database": {
            "pool_initialized": pool_status["initialized"],
            "pool_size": pool_status["size"],
            "connections_checked_out": pool_status["checked_out"],
        },
    }
