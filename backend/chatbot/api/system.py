from fastapi import APIRouter
from loguru import logger

from chatbot.core.router import available_models
from chatbot.db import postgres
from chatbot.models.system import HealthResponse, ModelInfo

router = APIRouter(prefix="/api/system", tags=["system"])


async def check_postgres() -> bool:
    try:
        row = await postgres.fetch_one("SELECT 1")
        return row is not None
    except Exception as e:
        logger.warning(f"Postgres check failed: {e}")
        return False


@router.get("/health", response_model=HealthResponse)
async def health():
    postgres_ok = await check_postgres()
    dependencies = {"postgres": "connected" if postgres_ok else "error"}
    for model in available_models():
        dependencies[model["provider"]] = "configured" if model["configured"] else "missing_key"

    return {
        "status": "ok" if postgres_ok else "error",
        "dependencies": dependencies,
    }


@router.get("/models", response_model=list[ModelInfo])
async def list_models():
    return available_models()
