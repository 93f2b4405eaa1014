import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from forum.config import settings
from forum.database import get_db, ping_database
from forum.errors import ForumError
from forum.logger import setup_logging
from forum.middleware import TimingMiddleware
from forum.routers import auth, posts, users
from forum.session_store import session_store

setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
logger = logging.getLogger("forum.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Forum API starting up (env=%s)", settings.APP_ENV)
    await session_store.connect()
    yield
    # Shutdown
    await session_store.disconnect()
    logger.info("Forum API shutting down")


app = FastAPI(
    title="Forum API",
    description="Posts, comments and votes behind token + session authentication",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth.router)
app.include_router(posts.router)
app.include_router(users.router)


@app.exception_handler(ForumError)
async def forum_error_handler(request: Request, exc: ForumError):
    """Render domain errors as ``{"status": <code>, "error": <message>}``."""
    extra = {
        "status": exc.status_code,
        "path": request.url.path,
        "method": request.method,
        "operation": type(exc).__name__,
    }
    if exc.status_code >= 500:
        logger.error(exc.detail, extra=extra, exc_info=exc)
    else:
        logger.warning(exc.detail, extra=extra)

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": exc.status_code, "error": exc.detail},
        headers=headers,
    )


@app.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    """Liveness plus the reachability of both stores."""
    database_ok = await ping_database(db)
    sessions_ok = await session_store.ping()
    return {
        "status": "healthy" if database_ok and sessions_ok else "degraded",
        "version": "1.0.0",
        "database": database_ok,
        "sessions": sessions_ok,
    }
