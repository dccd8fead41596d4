import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from devchat.api import chat, conversations
from devchat.api.deps import get_orchestrator
from devchat.core.config import settings
from devchat.core.database import init_db
from devchat.core.errors import StoreUnavailable
from devchat.services.orchestrator import ConversationOrchestrator
from devchat.services.reconcile import reconcile_loop


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure logging based on debug setting
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s" if settings.debug
        else "%(levelname)-8s %(name)s: %(message)s",
    )

    if settings.store_backend == "sql":
        init_db()

    # Start background reconciliation
    reconcile_task = None
    if settings.reconcile_interval_seconds > 0:
        repository = app.dependency_overrides.get(get_orchestrator, get_orchestrator)().repository
        reconcile_task = asyncio.create_task(reconcile_loop(repository, settings.reconcile_interval_seconds))

    yield

    # Cancel reconciliation on shutdown
    if reconcile_task:
        reconcile_task.cancel()
        try:
            await reconcile_task
        except asyncio.CancelledError:
            pass


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(conversations.router, prefix="/api/conversations", tags=["conversations"])


@app.get("/api/health")
async def health(orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    services = {}
    try:
        orchestrator.repository.store.ping()
        services["store"] = {"healthy": True}
    except StoreUnavailable as e:
        services["store"] = {"healthy": False, "error": str(e)}

    healthy, detail = await orchestrator.generator.health_check()
    services["generator"] = {"healthy": healthy, "detail": detail}

    status = "ok" if all(s["healthy"] for s in services.values()) else "degraded"
    return {"status": status, "app": settings.app_name, "services": services}
