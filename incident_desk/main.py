"""
Incident Desk - Main Application
================================

Chat-driven hotel incident routing and multi-team acknowledgment.

Modules:
- Classification: route free-text reports to departments
- Incidents: ticket lifecycle, confirmations, feedback, reminders

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, chat gateway, YAML watchers, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from incident_desk.config import settings
from incident_desk.core import ApplicationException

# Infrastructure
from incident_desk.infrastructure.database import (
    close_database, create_tables, get_session_maker, init_database
)

# Classification Module
from incident_desk.classification.application import ClassificationService
from incident_desk.classification.infrastructure import (
    KeywordConfigManager, UserDirectoryManager
)
from incident_desk.classification.interfaces import classification_router

# Incidents Module
from incident_desk.incidents.application import (
    IdentifierResolver,
    InboundEventRouter,
    LifecycleCoordinator,
    NotificationFanout,
    ReminderService,
)
from incident_desk.incidents.domain import ChannelMap
from incident_desk.incidents.infrastructure import (
    ReminderScheduler, SQLAlchemyTicketStore, WebhookChatTransport
)
from incident_desk.incidents.interfaces import incidents_router

# Middleware and Logging
from incident_desk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from incident_desk.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load keyword vocabularies and user directory, start watching them
    4. Wire the ticket store, chat transport, coordinator and event router
    5. Start the reminder scheduler

    SHUTDOWN:
    1. Stop reminder scheduler
    2. Stop file watchers
    3. Close chat transport
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Incident Desk", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Create tables (for development - use Alembic in production)
    logger.info("Creating database tables")
    try:
        await create_tables()
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    # Keyword vocabularies and user directory (hot-reloaded)
    logger.info("Loading keyword vocabularies and user directory")
    keyword_manager = KeywordConfigManager()
    keyword_manager.load(settings.keywords_path)
    keyword_manager.start_watching()

    user_manager = UserDirectoryManager()
    user_manager.load(settings.users_path)
    user_manager.start_watching()

    classification_service = ClassificationService(keyword_manager, user_manager)

    # Ticket lifecycle
    channels = ChannelMap(
        primary_channel_id=settings.primary_channel_id,
        team_channels=dict(settings.team_channels),
    )
    ticket_store = SQLAlchemyTicketStore(get_session_maker(), max_retries=settings.store_max_retries)
    transport = WebhookChatTransport(
        settings.transport_webhook_url,
        timeout_seconds=settings.transport_timeout_seconds,
    )
    if not settings.transport_webhook_url:
        logger.warning("Chat webhook not configured - outbound messages will be dropped")

    fanout = NotificationFanout(transport, concurrency=settings.notification_concurrency)
    coordinator = LifecycleCoordinator(
        ticket_store,
        classification_service,
        fanout,
        channels,
        display_timezone=settings.display_timezone,
    )
    event_router = InboundEventRouter(
        coordinator,
        IdentifierResolver(ticket_store),
        classification_service,
        fanout,
    )

    # Reminders (optional)
    reminder_scheduler = None
    if settings.reminder_interval_seconds > 0:
        reminder_service = ReminderService(
            ticket_store,
            fanout,
            channels,
            after_minutes=settings.reminder_after_minutes,
            display_timezone=settings.display_timezone,
        )
        reminder_scheduler = ReminderScheduler(
            reminder_service, interval_seconds=settings.reminder_interval_seconds
        )
        await reminder_scheduler.start()
    else:
        logger.info("Reminders disabled")

    # Store services in app state for dependency injection
    app.state.settings = settings
    app.state.keyword_manager = keyword_manager
    app.state.user_manager = user_manager
    app.state.classification_service = classification_service
    app.state.ticket_store = ticket_store
    app.state.coordinator = coordinator
    app.state.event_router = event_router
    app.state.reminder_scheduler = reminder_scheduler

    logger.info("Incident Desk started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Incident Desk")

    if reminder_scheduler:
        await reminder_scheduler.stop()

    keyword_manager.stop_watching()
    user_manager.stop_watching()

    await transport.close()
    await close_database()

    logger.info("Incident Desk shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Incident Desk API",
    description="""
    ## Chat-driven hotel incident desk

    Reports written in the incident chat are routed to the right
    departments and tracked until every assigned team confirms.

    ---

    ### 🏷️ Classification Module

    - `POST /classification/classify` - Detect the teams for a report
    - `POST /classification/reload` - Reload keyword and user files (admin)

    Tiers, first non-empty wins: explicit team reference, @-mentioned
    users' teams, fuzzy keyword scoring.

    ---

    ### 🎫 Incidents Module

    - `POST /incidents/events/messages` - Inbound chat message (gateway)
    - `POST /incidents/events/edits` - Edit of a reporting message
    - `POST /incidents` - Submit a report
    - `GET /incidents` - List tickets
    - `GET /incidents/{id}` - Get a ticket
    - `POST /incidents/{id}/confirmations` - Team confirmation
    - `POST /incidents/{id}/cancel` - Cancel (reporter or admin)
    - `POST /incidents/{id}/feedback-requests` - Ask teams for status
    - `POST /incidents/{id}/feedback` - Team status update

    **Teams:** `it`, `man`, `ama`, `rs`, `seg`

    **States:** `pending` → `completed` | `cancelled`
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware ===
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(classification_router)
app.include_router(incidents_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "keywords": "loaded (5 teams)",
                        "user_directory": "loaded (12 users)",
                        "reminder_scheduler": "running",
                        "chat_transport": "configured"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.
    """
    state = request.app.state
    classification_service = getattr(state, "classification_service", None)
    scheduler = getattr(state, "reminder_scheduler", None)

    checks = {
        "keywords": "not_loaded",
        "user_directory": "not_loaded",
        "reminder_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "chat_transport": "configured" if settings.transport_webhook_url else "not_configured",
    }
    if classification_service is not None:
        checks["keywords"] = f"loaded ({len(classification_service.keywords.known_teams)} teams)"
        checks["user_directory"] = f"loaded ({len(classification_service.directory.users)} users)"

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Incident Desk",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "classification": {
                "prefix": "/classification",
                "endpoints": [
                    "POST /classification/classify - Detect teams for a report",
                    "POST /classification/reload - Reload keyword and user files"
                ]
            },
            "incidents": {
                "prefix": "/incidents",
                "endpoints": [
                    "POST /incidents/events/messages - Inbound chat message",
                    "POST /incidents/events/edits - Edited report",
                    "POST /incidents - Submit report",
                    "GET /incidents - List tickets",
                    "GET /incidents/{id} - Get ticket",
                    "POST /incidents/{id}/confirmations - Confirm for a team",
                    "POST /incidents/{id}/cancel - Cancel ticket",
                    "POST /incidents/{id}/feedback-requests - Ask for status",
                    "POST /incidents/{id}/feedback - Record team status"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "incident_desk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
