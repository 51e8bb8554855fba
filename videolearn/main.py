"""VideoLearn Milestone Engine - FastAPI app entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from videolearn.core.config import get_settings
from videolearn.core.errors import EngineError
from videolearn.db.base import Base
from videolearn.db.session import AsyncSessionLocal, engine
from videolearn.routers import api
from videolearn.services.engine import LearningEngine

logger = logging.getLogger(__name__)

settings = get_settings()

STATUS_BY_CODE = {
    "not_found": 404,
    "access_denied": 403,
    "validation_error": 422,
    "retry_limit_exceeded": 429,
    "conflict": 409,
    "internal_error": 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.engine = LearningEngine(AsyncSessionLocal, settings=settings)
    logger.info("%s started", settings.app_name)

    yield

    await app.state.engine.close()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Milestone-gated video lessons with graded checkpoints",
    lifespan=lifespan,
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    return JSONResponse(status_code=STATUS_BY_CODE.get(exc.code, 400), content=exc.to_dict())


app.include_router(api.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
