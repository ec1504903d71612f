import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from app.config import get_settings
from app.db.session import init_db
from app.api.dependencies import get_dispatcher
from app.api.routes import slack

settings = get_settings()

# Configure application logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Set log level for app modules
logger = logging.getLogger("app")
logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    # Let in-flight aggregation jobs finish before the loop goes away
    dispatcher = get_dispatcher()
    if dispatcher.pending:
        logger.info(f"Waiting for {dispatcher.pending} aggregation job(s) to finish")
    await dispatcher.drain()


app = FastAPI(
    title=settings.app_name,
    description="Tag Slack messages and collect every tag into its own thread",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(slack.router, prefix="/api/slack", tags=["Slack"])


@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": "0.1.0",
        "endpoints": {
            "interactions": "/api/slack/interactions",
            "health": "/health",
            "docs": "/docs",
        },
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": settings.app_name,
        "thread_scope": settings.thread_scope.value,
        "tag_policy": settings.tag_policy.value,
        "aggregation_jobs": get_dispatcher().stats.to_dict(),
    }
