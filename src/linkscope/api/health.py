"""Health check endpoint."""

from fastapi import APIRouter

from ..config import is_placeholder_secret

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    # Read live globals from api module at request time.
    from linkscope import api

    try:
        stats = api.link_table.stats()
        table_accessible = True
    except Exception:
        stats = {"rows": 0, "errors": 0}
        table_accessible = False

    analyzer_configured = api.runtime_env_settings is not None and not is_placeholder_secret(
        api.runtime_env_settings.openai_api_key
    )

    return {
        "status": "healthy" if table_accessible else "degraded",
        "version": api.VERSION,
        "table_accessible": table_accessible,
        "link_count": stats["rows"],
        "load_errors": stats["errors"],
        "analyzer_configured": analyzer_configured,
        "analyzer_mode": api.runtime_config.analyzer_mode if api.runtime_config else "unknown",
    }
