"""
PaperStats API: performance analytics and gamification for past-paper practice.
"""
import logging
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from paperstats.api.gamification import router as gamification_router
from paperstats.api.notifications import router as notifications_router
from paperstats.api.papers import router as papers_router
from paperstats.api.performance import router as performance_router
from paperstats.core.cache import redis_client
from paperstats.core.config import settings
from paperstats.core.database import SessionLocal, init_db
from paperstats.core.errors import PaperStatsError, StorageError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s %s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)
    init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url=None if settings.is_production() else "/docs",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

prefix = settings.API_V1_PREFIX
app.include_router(performance_router, prefix=f"{prefix}/performance", tags=["performance"])
app.include_router(papers_router, prefix=f"{prefix}/papers", tags=["papers"])
app.include_router(gamification_router, prefix=f"{prefix}/gamification", tags=["gamification"])
app.include_router(notifications_router, prefix=f"{prefix}/notifications", tags=["notifications"])


# Exception handlers
@app.exception_handler(PaperStatsError)
async def paperstats_exception_handler(request: Request, exc: PaperStatsError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"message": exc.detail, "type": "http_error", "status_code": exc.status_code}},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    # drop the "body"/"query" location prefix
    loc = [str(p) for p in first.get("loc", ())][1:]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "message": first.get("msg", "Validation error"),
                "type": "validation_error",
                "field": ".".join(loc) or None,
            }
        },
    )


@app.exception_handler(SQLAlchemyError)
async def storage_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    err = StorageError("The data store is unavailable, try again later")
    return JSONResponse(status_code=err.status_code, content={"error": err.to_dict()})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s", exc, exc_info=exc)
    message = "An internal error occurred" if settings.is_production() else str(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"message": message, "type": "internal_error"}},
    )


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok", "version": settings.APP_VERSION, "environment": settings.ENVIRONMENT}


@app.get("/health/ready", tags=["health"])
def readiness():
    checks = {"database": False, "redis": False}
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
    finally:
        db.close()
    try:
        checks["redis"] = bool(redis_client.ping())
    except redis.RedisError as e:
        logger.error("Redis health check failed: %s", e)

    ready = checks["database"]
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )
