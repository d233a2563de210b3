from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from viewsync.api import upload, watch, analytics
from viewsync.database import engine, Base
from viewsync.config import get_settings
from viewsync.dependencies import get_session_manager
# Import all models to ensure they're registered with Base
from viewsync.models import KeyValueEntry
import logging

settings = get_settings()

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Best-effort final flush of every open playback session
    provider = app.dependency_overrides.get(get_session_manager, get_session_manager)
    await provider().close_all()
    logger.info("Open playback sessions flushed")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan
)

# Dynamic CORS
origins = settings.ALLOWED_ORIGINS
if not origins:
    # Allow all origins in development
    origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Serve locally stored uploads
app.mount("/storage", StaticFiles(directory=str(settings.BASE_STORAGE_PATH)), name="storage")

# Include routers
app.include_router(upload.router, prefix="/api/videos", tags=["videos"])
app.include_router(analytics.router, prefix="/api/videos", tags=["analytics"])
app.include_router(watch.router, prefix="/api", tags=["watch"])


@app.get("/")
def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.VERSION,
        "status": "running",
        "environment": settings.ENVIRONMENT
    }

@app.get("/health")
def health_check():
    return {"status": "healthy"}
