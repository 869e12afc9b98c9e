"""LinkScope FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import ConfigError, ConfigManager
from ..core.link_table import LinkTable
from ..models.config import AppConfig, EnvSettings

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

# Set by lifespan; routers read them at request time
config_manager: ConfigManager = None
runtime_config: AppConfig = None
runtime_env_settings: EnvSettings = None
link_table: LinkTable = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configuration and the link table for the server's lifetime."""
    global config_manager, runtime_config, runtime_env_settings, link_table

    config_manager = ConfigManager()
    logger.info(f"Starting LinkScope API from {config_manager.config_dir}")

    try:
        runtime_config = config_manager.load_app_config()
        runtime_env_settings = config_manager.load_env_settings()
    except ConfigError as e:
        logger.error(f"Cannot start without configuration: {e}")
        raise

    link_table = LinkTable(config_manager.storage_root(runtime_config))
    await link_table.initialize()

    logger.info(f"Serving {len(link_table.index)} links from {link_table.root}")

    yield

    logger.info("LinkScope API stopped")


def _configured_origins() -> List[str]:
    """Extra CORS origins from config.yaml; none when it is not there yet."""
    try:
        return list(ConfigManager().load_app_config().allowed_origins)
    except ConfigError:
        return []


app = FastAPI(
    title="LinkScope API",
    description="Link bookmarking with AI summaries and tags",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_configured_origins(),
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from .analyze import router as analyze_router
from .export import router as export_router
from .health import router as health_router
from .links import router as links_router

app.include_router(links_router, prefix="/api/v1", tags=["links"])
app.include_router(export_router, prefix="/api/v1", tags=["export"])
app.include_router(health_router, prefix="/api/v1", tags=["health"])
app.include_router(analyze_router, prefix="/api", tags=["analyze"])


@app.get("/")
async def root():
    """Service index."""
    return {
        "name": "LinkScope API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/api/v1/health",
        "analyze": "/api/analyze-link",
    }
