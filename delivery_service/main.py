from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from delivery_service.core.config import settings
from delivery_service.core.logging import setup_logging, get_logger
from delivery_service.services.delivery_orchestrator import create_delivery_orchestrator
from delivery_service.api.v1.router import api_router


# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    # Startup
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = create_delivery_orchestrator(settings)
    logger.info(
        "Delivery Service startup completed",
        providers=[backend.name for backend in app.state.orchestrator.backends]
    )

    yield

    # Shutdown
    pending = app.state.orchestrator.queue.size()
    if pending:
        logger.warning("Delivery Service shutting down with queued messages", pending=pending)
    logger.info("Delivery Service shutdown completed")


app = FastAPI(
    title=settings.APP_NAME,
    description="""
    **Resilient Delivery Service**

    ## Features

    - **Backend fallback** - Messages move to the next backend when one keeps failing
    - **Retry with backoff** - Exponential delays between attempts on the same backend
    - **Circuit breakers** - Failing backends are skipped until they recover
    - **Rate limiting** - Global sliding-window send rate
    - **Idempotency** - Ids that already succeeded are never sent twice
    - **Delivery history** - Every attempt is recorded per message

    ## Quick Start

    1. Send a message: `POST /v1/messages`
    2. Check its record: `GET /v1/messages/{id}`
    3. Inspect backends: `GET /v1/health/detailed`
    """,
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix="/v1")


@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": settings.APP_NAME,
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "status": "running",
        "docs_url": "/docs",
        "health_check": "/v1/health"
    }
