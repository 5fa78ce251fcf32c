"""
FastAPI application initialization
"""

from fastapi import FastAPI
import httpx
from api.routes import health, search, imports, stats
from core.config import settings
from core.database import close_database, get_session_maker, init_database
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.extractors.source_stream import StreamingDecoder
from ingestion.manager import ImportManager
from ingestion.scheduler import ImportScheduler
from search.engine import SearchEngine
from search.indexed import IndexedSearchBackend
from search.streaming import StreamingSearchBackend

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Sewer Inspection Backend API",
    description="Import, store and search sewer pipe inspection records",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(search.router)
app.include_router(imports.router)
app.include_router(stats.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    setup_logging()
    logger.info("Starting Sewer Inspection Backend API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    await init_database()

    app.state.http_client = httpx.AsyncClient(timeout=settings.SOURCE_TIMEOUT)
    decoder = StreamingDecoder(client=app.state.http_client)
    session_maker = get_session_maker()

    app.state.import_manager = ImportManager(session_maker, decoder)
    app.state.search_engine = SearchEngine(
        indexed=IndexedSearchBackend(session_maker),
        streaming=StreamingSearchBackend(decoder),
    )
    logger.info(f"Search backend mode: {app.state.search_engine.mode}")

    # Start Scheduler
    app.state.scheduler = None
    if settings.SYNC_INTERVAL_MINUTES > 0:
        app.state.scheduler = ImportScheduler(app.state.import_manager)
        app.state.scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Sewer Inspection Backend API")
    if app.state.scheduler is not None:
        app.state.scheduler.stop()
    # Let a running import reach a batch boundary before its client and store go away
    await app.state.import_manager.drain(settings.IMPORT_SHUTDOWN_TIMEOUT)
    await app.state.http_client.aclose()
    await close_database()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Sewer Inspection Backend API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "search": "/search",
            "search_text": "/search/text",
            "search_options": "/search/options",
            "imports": "/imports",
            "stats": "/stats"
        }
    }
