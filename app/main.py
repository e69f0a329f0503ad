import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import close_db, get_db, init_db
from app.errors import register_error_handlers
from app.realtime import close_event_bus, connect_event_bus, get_event_bus
from app.realtime.base_event_bus import EventBus
from app.routers.conversations import router as conversations_router
from app.routers.messages import router as messages_router
from app.routers.realtime import router as realtime_router
from app.routers.users import router as users_router

# Load environment variables
load_dotenv()

# Environment variable parsing
ENV = os.getenv("ENV")
ENV_IS_PROD = ENV == "prod"
COMMIT_HASH = os.getenv("COMMIT_HASH")
if not COMMIT_HASH and ENV_IS_PROD:
    raise ValueError("COMMIT_HASH is required for production environments")

APP_ADDR = os.getenv("HOST", "0.0.0.0")
APP_PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown."""
    # Startup
    await init_db()
    await connect_event_bus()
    logger.info("QuickChat realtime service started")
    yield
    # Shutdown
    await close_event_bus()
    await close_db()


app = FastAPI(
    title="QuickChat Realtime",
    description="Conversations, read tracking and per-user change fan-out",
    version=COMMIT_HASH,
    lifespan=lifespan,
)

register_error_handlers(app)

# Include routers
app.include_router(
    conversations_router, prefix="/api/conversations", tags=["conversations"]
)
app.include_router(messages_router, prefix="/api/messages", tags=["messages"])
app.include_router(users_router, prefix="/api/users", tags=["users"])
app.include_router(realtime_router, prefix="/api/realtime", tags=["realtime"])


@app.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
) -> Dict[str, Any]:
    """Health check endpoint with database and event bus status."""
    try:
        # Test database connection
        result = await db.execute(text("SELECT 1"))
        db_status = "connected" if result.scalar() == 1 else "error"
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")
        db_status = "disconnected"

    event_bus_stats = event_bus.get_stats()
    healthy = db_status == "connected" and event_bus_stats["connected"]

    return {
        "status": "healthy" if healthy else "degraded",
        "database": db_status,
        "event_bus": event_bus_stats,
        "environment": ENV,
        "version": COMMIT_HASH,
    }


# If run directly, start the server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=APP_ADDR, port=APP_PORT)
