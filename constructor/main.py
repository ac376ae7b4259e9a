# constructor/main.py
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from constructor.api import router as api_router
from constructor.core.config import settings
from constructor.core.exceptions import InvalidNodeTypeException, NodeNotFoundException, ProjectNotFoundException
from constructor.core.limiter import limiter
from constructor.core.logging_config import setup_logging
from constructor.core.redis_client import RedisClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    logger.info("construct0r backend starting")
    try:
        yield
    finally:
        # Pending debounced saves are written before the connection goes away.
        await api_router.shutdown_services()
        await RedisClient.close_client()
        logger.info("Flushed pending saves and closed the Redis connection.")


app = FastAPI(
    title="construct0r API",
    description="Node-graph workflows that feed content sources into AI chat nodes.",
    version="1.0.0",
    lifespan=lifespan
)

# Add Limiter to the application state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Exempt all OPTIONS requests from rate limiting to prevent CORS preflight issues
app.state.limiter.exempt_methods = ["OPTIONS"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["Content-Type", "Authorization", "X-User-ID"],
)

@app.exception_handler(NodeNotFoundException)
async def node_not_found_exception_handler(request: Request, exc: NodeNotFoundException):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"message": exc.message},
    )

@app.exception_handler(ProjectNotFoundException)
async def project_not_found_exception_handler(request: Request, exc: ProjectNotFoundException):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"message": exc.message},
    )

@app.exception_handler(InvalidNodeTypeException)
async def invalid_node_type_exception_handler(request: Request, exc: InvalidNodeTypeException):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": exc.message},
    )

app.include_router(api_router.router)

@app.get("/")
async def root():
    return {"message": "Welcome to the construct0r API"}

@app.get("/healthz", tags=["Health"], status_code=status.HTTP_200_OK)
async def health_check():
    return {"status": "ok"}

@app.get("/redis-health", tags=["Health"], status_code=status.HTTP_200_OK)
async def redis_health_check():
    """Lightweight Redis readiness probe."""
    redis_client = RedisClient.get_client()
    try:
        pong = await redis_client.ping()
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Redis unavailable: {exc}"
        ) from exc
    return {"status": "ok", "ping": pong}
