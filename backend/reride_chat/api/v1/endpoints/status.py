"""
Status and health check endpoints.

WHAT: Health of the conversation database and the LLM provider
WHY: Quick diagnostics for the frontend and ops
HOW: Database ping plus provider ping
"""

from fastapi import APIRouter
from fastapi.concurrency import run_in_threadpool

from ....llm import ProviderDisabledError, get_provider
from ....core.database import ping_database
from ....core.config import settings
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def _llm_status() -> dict:
    try:
        provider = get_provider()
    except ProviderDisabledError as e:
        logger.warning(f"LLM provider disabled: {e}")
        return {"available": False, "base_url": settings.LLM_BASE_URL, "models": None, "error": str(e)}

    status = await provider.ping()
    return {
        "available": status.available,
        "base_url": status.base_url,
        "models": status.models,
        "error": status.error
    }


@router.get("/llm/status")
async def llm_status():
    """
    Check LLM provider and database status.

    Returns:
        JSON with provider status and database status
    """
    return {
        "llm": await _llm_status(),
        "database": await run_in_threadpool(ping_database)
    }


@router.get("/health")
async def health_check():
    """
    Overall application health.

    The chat works without the LLM, so only the database decides between
    "healthy" and "unhealthy"; a missing LLM makes the service "degraded".
    """
    llm = await _llm_status()
    db_status = await run_in_threadpool(ping_database)

    if not db_status["available"]:
        overall = "unhealthy"
    elif not llm["available"]:
        overall = "degraded"
    else:
        overall = "healthy"

    return {
        "status": overall,
        "version": settings.APP_VERSION,
        "app_name": settings.APP_NAME,
        "components": {
            "llm": {
                "available": llm["available"],
                "provider": settings.LLM_PROVIDER
            },
            "database": {
                "available": db_status["available"]
            }
        }
    }
