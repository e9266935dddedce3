"""
FastAPI application entry point for the bibliography search backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import sys

from bibsearch.config.settings import get_settings
from bibsearch.api import bibliography, config
from bibsearch.services.manager import get_manager

# Get settings to access log configuration
settings = get_settings()

# Configure logging with both console and file output
# Use UTF-8 encoding to handle Unicode characters in titles and author names
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.DEBUG)
console_handler.setFormatter(logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
))
# Ensure UTF-8 encoding for console output on Windows
if hasattr(console_handler.stream, 'reconfigure'):
    try:
        console_handler.stream.reconfigure(encoding='utf-8', errors='replace')
    except (OSError, ValueError):
        pass

handlers = [console_handler]

if settings.log_file:
    file_handler = logging.FileHandler(settings.log_file, encoding='utf-8')
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))
    handlers.append(file_handler)

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=handlers,
    force=True  # Override any existing configuration
)

# Suppress overly verbose third-party loggers
logging.getLogger("aiohttp").setLevel(logging.INFO)
logging.getLogger("httpx").setLevel(logging.INFO)
logging.getLogger("urllib3").setLevel(logging.INFO)

# Configure Uvicorn's loggers to use the same format as application logs
uvicorn_access_logger = logging.getLogger("uvicorn.access")
uvicorn_access_logger.handlers = []
uvicorn_access_logger.propagate = True

uvicorn_error_logger = logging.getLogger("uvicorn.error")
uvicorn_error_logger.handlers = []
uvicorn_error_logger.propagate = True

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(f"Starting bibliography search backend v{settings.version}")
    logger.info(f"Zotero connection: {settings.zotero_connection_type}")
    if settings.log_file:
        logger.info(f"Logging to file: {settings.log_file}")

    manager = get_manager()
    for provider in manager.providers():
        state = "enabled" if provider.is_enabled() else "disabled"
        logger.info(f"Bibliography provider '{provider.key}' ({provider.name}) {state}")

    yield
    logger.info("Shutting down bibliography search backend")
    await manager.close()


# Create FastAPI app
app = FastAPI(
    title="Bibliography Search API",
    description="Aggregated bibliography sources with fuzzy search",
    version=settings.version,
    lifespan=lifespan
)

# Configure CORS (allow requests from local editor clients)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Local-only, so accept all origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(config.router, prefix="/api", tags=["config"])
app.include_router(bibliography.router, prefix="/api", tags=["bibliography"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Bibliography Search API",
        "version": settings.version,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
