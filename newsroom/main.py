"""FastAPI application for the IT news service."""

import logging

from fastapi import FastAPI
from pydantic import BaseModel
from sqlalchemy import text

from newsroom.articles_api import router as articles_router
from newsroom.db.connection import close_db, init_db
from newsroom.dependencies import DbSession, close_services, init_services

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="IT News",
    description="IT news aggregation with LLM classification and hybrid search",
    version="1.0.0"
)

app.include_router(articles_router)


class HealthStatus(BaseModel):
    status: str
    database: bool


@app.on_event("startup")
async def startup_event():
    """Check the database and build shared services."""
    try:
        await init_db()
        logger.info("Database connection initialized")
    except Exception as e:
        logger.warning(f"Database initialization failed: {e}")

    init_services(app)
    logger.info("News API started")


@app.on_event("shutdown")
async def shutdown_event():
    """Close the cache client and the database pool."""
    await close_services(app)
    await close_db()
    logger.info("Database connection closed")


@app.get("/health", response_model=HealthStatus)
async def health_check(session: DbSession):
    """Check the service can reach its database."""
    database = False
    try:
        await session.execute(text("SELECT 1"))
        database = True
    except Exception as e:
        logger.warning(f"Health check failed: {e}")

    return HealthStatus(status="healthy" if database else "degraded", database=database)
