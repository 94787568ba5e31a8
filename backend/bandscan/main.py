"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router
from .api.routes import catalog, vision_client
from .config import get_settings
from . import __version__

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    # Startup
    logger.info("Starting Cigar Band Scanner API...")
    settings = get_settings()
    
    # Load the catalog once; the resolver only reads from it
    count = catalog.load(settings.catalog_path)
    if count:
        logger.info(f"Catalog ready with {count} cigars")
    else:
        logger.warning("Catalog is empty - every scan will fall back to manual search")
    
    if not vision_client.is_configured:
        logger.warning("VISION_API_KEY not set - scans will fail until it is configured")
    
    logger.info(f"API ready - Version {__version__}")
    
    yield
    
    # Shutdown
    logger.info("Shutting down Cigar Band Scanner API...")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()
    
    app = FastAPI(
        title=settings.app_name,
        description="""
## Cigar Band Identification API

Identifies cigars from photos of their bands and resolves free text against the cigar catalog.

### Features
- **Band Scan**: Upload a band photo; logos and text are detected and matched
- **Text Resolve**: Resolve OCR or typed text through exact, brand+variant and prefix tiers
- **Manual Search**: Prefix search over cigar names (the fallback when a scan misses)
- **Barcode Routing**: Turn a decoded barcode into a search pre-fill

### Quick Start
1. Use `/health` to check API status
2. Use `/candidates` to see how band text is turned into queries
3. Use `/scan` to identify a cigar from a photo
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    
    # Configure CORS - restrict to allowed frontend origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    
    # Include routes
    app.include_router(router, prefix="/api/v1")
    
    # Root redirect to docs
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "Cigar Band Scanner API",
            "version": __version__,
            "docs": "/docs"
        }
    
    return app


# Create app instance
app = create_app()
