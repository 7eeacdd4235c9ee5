import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.endpoints.thinking import router as thinking_router
from database import close_db_connections, create_tables
from logging_config import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    logger.info("reasoning_service_online")
    yield
    await close_db_connections()
    logger.info("reasoning_service_stopped")


app = FastAPI(title="Reasoning Engine", lifespan=lifespan)

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:8000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(thinking_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
