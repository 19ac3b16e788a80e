import asyncio
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from chatbot.config import get_settings
from chatbot.db import postgres
from chatbot.api import chat, storage, system


def configure_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level=get_settings().log_level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting chatbot backend...")
    settings = get_settings()
    logger.info(
        f"Connecting to PostgreSQL at {settings.postgres_host}:{settings.postgres_port}"
    )

    for attempt in range(10):
        try:
            await postgres.create_pool()
            break
        except Exception as e:
            if attempt < 9:
                logger.warning(
                    f"DB connection attempt {attempt + 1} failed: {e}. Retrying in 2s..."
                )
                await asyncio.sleep(2)
            else:
                logger.error("Failed to connect to database after 10 attempts")
                raise

    await postgres.init_schema()
    logger.info("Chatbot backend ready")
    yield

    await postgres.close_pool()
    logger.info("Chatbot backend shut down")


app = FastAPI(
    title="Chatbot API",
    version="0.1.0",
    description="Streaming chat backend with user memory and conversation persistence",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router)
app.include_router(storage.router)
app.include_router(system.router)


@app.get("/")
async def root():
    return {"message": "Chatbot API", "version": "0.1.0", "docs": "/docs"}
