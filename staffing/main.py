from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from staffing.api.allocations import router as allocations_router
from staffing.config.settings import settings
from staffing.core.logger import setup_logger
from staffing.db.models import Base
from staffing.db.session import get_engine

setup_logger(level=settings.log_level)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Ensure the allocation tables exist before serving requests."""
    logger.info("Ensuring database tables exist")
    Base.metadata.create_all(bind=get_engine())
    logger.info("Database tables verified")
    yield


app = FastAPI(title="Staffing Ledger", lifespan=lifespan)
app.include_router(allocations_router)


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
