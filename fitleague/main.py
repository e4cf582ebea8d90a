import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from fitleague import scheduler
from fitleague.config import settings
from fitleague.core import exceptions
from fitleague.core.logging_config import configure_logging
from fitleague.database import build_engine, build_session_factory
from fitleague.routers.core import router as core_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    engine = build_engine()
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    tasks = scheduler.start_schedulers(app.state.session_factory)
    try:
        yield
    finally:
        await scheduler.stop_schedulers(tasks)
        await engine.dispose()
        logger.info("Engine disposed")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

# Exception Handlers
app.add_exception_handler(RequestValidationError, exceptions.validation_exception_handler)  # type: ignore
app.add_exception_handler(IntegrityError, exceptions.integrity_exception_handler)  # type: ignore
app.add_exception_handler(exceptions.FitLeagueError, exceptions.fitleague_exception_handler)  # type: ignore

# Routers
app.include_router(core_router, prefix=settings.API_V1_STR, tags=["Core"])


@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/healthz")
async def healthz(request: Request):
    try:
        async with request.app.state.session_factory() as db:
            await db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.exception("Health check failed")
        raise exceptions.DependencyFailure("database unavailable") from exc
    return {"status": "ok", "database": "ok"}
