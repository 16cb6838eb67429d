"""
CRM Workflow Automation Engine Service

A FastAPI service for event-driven CRM automations with:
- Node/edge workflow graphs (conditions, fan-out, delays)
- Template catalog with one-click cloning
- Email, lead and schedule triggers on a bounded worker pool
- AI classification, summarization and reply drafting
- PostgreSQL execution history with per-node step records
- WebSocket streaming for execution updates
"""

import logging
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.resources import Resource
import asyncpg

from .config import config
from .manager import WorkflowManager
from .persistence import WorkflowRepository, PostgresWorkflowRepository, InMemoryWorkflowRepository
from .tools import (
    LLMClient,
    AIService,
    CrmStore,
    InMemoryCrmStore,
    HttpCrmStore,
    NotificationDispatcher,
    InternalFeedChannel,
    WebhookChannel,
    EmailChannel,
)
from .api.routes import router, set_dependencies
from .api.websocket import websocket_endpoint, send_execution_update, set_snapshot_loader
from .errors import ExecutionNotFound

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# Global resources
repository: Optional[WorkflowRepository] = None
llm_client: Optional[LLMClient] = None
crm_store: Optional[CrmStore] = None
notifications: Optional[NotificationDispatcher] = None
workflow_manager: Optional[WorkflowManager] = None


async def create_repository() -> WorkflowRepository:
    """Connect to PostgreSQL, or keep state in process for ``memory://``."""
    if config.uses_memory_store:
        repo = InMemoryWorkflowRepository()
    else:
        db_pool = await asyncpg.create_pool(config.database_url, min_size=2, max_size=10)
        logger.info("Database connection established")
        repo = PostgresWorkflowRepository(db_pool)
    await repo.init_tables()
    return repo


def create_notifications() -> NotificationDispatcher:
    channels = [InternalFeedChannel()]
    if config.notification_webhook_url:
        channels.append(WebhookChannel(config.notification_webhook_url, timeout=config.notification_timeout_seconds))
    if config.email_relay_url:
        channels.append(EmailChannel(config.email_relay_url, timeout=config.notification_timeout_seconds))
    return NotificationDispatcher(channels)


async def load_execution(execution_id: str) -> Optional[dict]:
    """Execution record for WebSocket snapshots, or None if unknown."""
    try:
        execution = await workflow_manager.get_execution(execution_id)
    except ExecutionNotFound:
        return None
    return execution.model_dump(mode="json")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global repository, llm_client, crm_store, notifications, workflow_manager

    # Setup OpenTelemetry
    resource = Resource.create({"service.name": "crm-workflow-engine"})
    provider = TracerProvider(resource=resource)
    processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otel_endpoint))
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)

    try:
        repository = await create_repository()
    except Exception as e:
        logger.warning(f"Could not connect to database: {e}")

    # Create clients
    llm_client = LLMClient(
        base_url=config.ai_base_url,
        api_key=config.ai_api_key,
        model=config.ai_model,
        timeout=config.ai_timeout_seconds,
    )
    if config.crm_api_url:
        crm_store = HttpCrmStore(config.crm_api_url, api_key=config.crm_api_key, timeout=config.record_timeout_seconds)
    else:
        logger.info("CRM_API_URL not set, keeping created records in memory")
        crm_store = InMemoryCrmStore()
    notifications = create_notifications()

    # Create workflow manager
    if repository:
        workflow_manager = WorkflowManager.create(
            repository,
            ai=AIService(llm_client),
            crm=crm_store,
            notifications=notifications,
            settings=config,
            publisher=send_execution_update,
        )
        await workflow_manager.start()
        set_dependencies(workflow_manager)
        set_snapshot_loader(load_execution)

    logger.info("Workflow engine service started")
    yield

    # Cleanup
    if workflow_manager:
        await workflow_manager.stop()
    await llm_client.close()
    await crm_store.close()
    await notifications.close()
    if repository:
        await repository.close()
    provider.shutdown()

    logger.info("Workflow engine service stopped")


app = FastAPI(
    title="CRM Workflow Engine",
    description="Event-driven workflow automation for CRM leads, emails and schedules",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Instrument with OpenTelemetry
FastAPIInstrumentor.instrument_app(app)

# Include API routes
app.include_router(router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy" if workflow_manager else "degraded",
        "database": "memory" if config.uses_memory_store else ("connected" if repository else "unavailable"),
    }


@app.websocket("/ws/executions/{execution_id}")
async def execution_websocket(websocket: WebSocket, execution_id: str):
    """WebSocket endpoint for execution streaming."""
    await websocket_endpoint(websocket, execution_id)


def run():
    import uvicorn
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    run()
