import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from conduit.cache import cache
from conduit.config import settings
from conduit.database import create_tables
from conduit.middleware import TimingMiddleware
from conduit.routers import articles, tags, users

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.CREATE_TABLES_ON_STARTUP:
        await create_tables()
    await cache.connect()
    logger.info("Conduit API started (env=%s)", settings.APP_ENV)
    yield
    await cache.disconnect()


app = FastAPI(
    title="Conduit API",
    description="Articles, tags, favorites, comments and the follow feed",
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
app.include_router(articles.router)
app.include_router(tags.router)
app.include_router(users.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0", "cache": cache.stats}
