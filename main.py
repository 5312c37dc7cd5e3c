# (v1.0.0) - Genre Fan-out + Author Release Tracking + Cover Proxy
import os
import sys
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from loguru import logger
from aggregator import DEFAULT_GLOBAL_CAP, DEFAULT_MIN_ITEMS, FanOutAggregator
from cache import CacheStore, MemoryCacheStore, RedisCacheStore
from discovery import DiscoveryOrchestrator, fallback_genre_labels
from errors import MissingParameter, UpstreamError
from fetcher import RateLimitedFetcher
from genres import GENRE_TAXONOMY
from images import ImageCache
from models import Book, CacheStats, GenreInfo, HealthResponse, ServiceHealth
from releases import ReleaseTracker
from sources import GOOGLE_BOOKS_API_URL, NYT_BOOKS_API_URL, CuratedListSource, LibrarySource, SearchSource

# --------------------------------------------------------------------
# 1. Configuration & Setup
# --------------------------------------------------------------------

env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)

logger.remove()
logger.add(
    sys.stderr,
    serialize=True,
    enqueue=True,
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="{time} {level} {message}",
)

REDIS_URL = os.getenv("REDIS_URL", "")
ITEM_DATA_URL = os.getenv("ITEM_DATA_URL", "http://localhost:3002")
GOOGLE_BOOKS_URL = os.getenv("GOOGLE_BOOKS_API_URL", GOOGLE_BOOKS_API_URL)
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
NYT_BOOKS_URL = os.getenv("NYT_BOOKS_API_URL", NYT_BOOKS_API_URL)
NYT_API_KEY = os.getenv("NYT_API_KEY")
ADMIN_KEY = os.getenv("ADMIN_KEY")

SHORT_CACHE_TTL = int(os.getenv("SHORT_CACHE_TTL", 60 * 30))
LONG_CACHE_TTL = int(os.getenv("LONG_CACHE_TTL", 60 * 60 * 24 * 3))
IMAGE_CACHE_TTL = int(os.getenv("IMAGE_CACHE_TTL", 60 * 60 * 24 * 7))

FETCH_MAX_CONCURRENT = int(os.getenv("FETCH_MAX_CONCURRENT", 3))
FETCH_MIN_INTERVAL = float(os.getenv("FETCH_MIN_INTERVAL", 0.2))
FETCH_TIMEOUT = float(os.getenv("FETCH_TIMEOUT", 10.0))
FRESHNESS_WINDOW_MONTHS = int(os.getenv("FRESHNESS_WINDOW_MONTHS", 12))

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=os.getenv("RATE_LIMIT_STORAGE", "memory://"),
    default_limits=["100/minute"],
)

# --------------------------------------------------------------------
# 2. Service Wiring
# --------------------------------------------------------------------

@dataclass
class Services:
    cache: CacheStore
    search: SearchSource
    discovery: DiscoveryOrchestrator
    releases: ReleaseTracker
    images: ImageCache
    fetchers: List[RateLimitedFetcher] = field(default_factory=list)

    async def aclose(self) -> None:
        for fetcher in self.fetchers:
            await fetcher.aclose()
        await self.cache.close()


def build_cache() -> CacheStore:
    if not REDIS_URL:
        logger.warning("REDIS_URL not set. Falling back to the in-process cache.")
        return MemoryCacheStore()
    logger.info("Redis cache configured.")
    return RedisCacheStore.from_url(REDIS_URL)


def build_services(cache: Optional[CacheStore] = None) -> Services:
    """One fetcher per external source; every request shares them."""
    cache = cache or build_cache()
    limits = dict(max_concurrent=FETCH_MAX_CONCURRENT, min_interval=FETCH_MIN_INTERVAL, timeout=FETCH_TIMEOUT)
    google = RateLimitedFetcher("google_books", **limits)
    nyt = RateLimitedFetcher("nyt_books", **limits)
    covers = RateLimitedFetcher("covers", **limits)
    # Internal store: no provider quota, but still timeout-bounded.
    item_data = RateLimitedFetcher("item_data", max_concurrent=10, min_interval=0.0, timeout=FETCH_TIMEOUT)

    library = LibrarySource(item_data, ITEM_DATA_URL)
    search = SearchSource(google, GOOGLE_BOOKS_URL, GOOGLE_API_KEY)
    curated = CuratedListSource(nyt, NYT_BOOKS_URL, NYT_API_KEY)
    if not curated.enabled:
        logger.warning("NYT_API_KEY not set. Curated lists disabled, genres use catalog search.")

    discovery = DiscoveryOrchestrator(
        library, search, curated, cache,
        aggregator=FanOutAggregator(
            global_cap=DEFAULT_GLOBAL_CAP,
            min_items=DEFAULT_MIN_ITEMS,
            fallback_items=fallback_genre_labels(),
            name="recommendations",
        ),
        short_ttl=SHORT_CACHE_TTL,
        long_ttl=LONG_CACHE_TTL,
    )
    releases = ReleaseTracker(
        library, search, cache,
        short_ttl=SHORT_CACHE_TTL,
        long_ttl=LONG_CACHE_TTL,
        window_months=FRESHNESS_WINDOW_MONTHS,
    )
    images = ImageCache(cache, covers, ttl_seconds=IMAGE_CACHE_TTL)
    return Services(cache, search, discovery, releases, images, fetchers=[google, nyt, covers, item_data])


def get_services(request: Request) -> Services:
    return request.app.state.services

# --------------------------------------------------------------------
# 3. Health Checks & Admin
# --------------------------------------------------------------------

async def get_admin_key(x_admin_key: str = Header(None)):
    if not ADMIN_KEY: raise HTTPException(status_code=500, detail="Admin not configured.")
    if x_admin_key != ADMIN_KEY: raise HTTPException(status_code=401, detail="Invalid key.")
    return True

async def check_cache_health(services: Services) -> ServiceHealth:
    try:
        await services.cache.ping()
        return ServiceHealth(name=services.cache.backend, status="ok")
    except Exception as e:
        return ServiceHealth(name=services.cache.backend, status="error", detail=str(e))

async def check_google_health(services: Services) -> ServiceHealth:
    try:
        await services.search.search("a", max_results=1)
        return ServiceHealth(name="google_books", status="ok")
    except UpstreamError as e:
        return ServiceHealth(name="google_books", status="error", detail=str(e))

# --------------------------------------------------------------------
# 4. API Endpoints
# --------------------------------------------------------------------

router = APIRouter()

@router.get("/")
async def read_root(request: Request): return {"message": "Shelfwise Discovery API v1.0.0 is running!"}

@router.get("/health", response_model=HealthResponse, tags=["Health & Stats"])
async def get_health(response: Response, request: Request, services: Services = Depends(get_services)):
    results = await asyncio.gather(check_cache_health(services), check_google_health(services))
    if any(res.status == "error" for res in results):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="error", services=results)
    return HealthResponse(status="ok", services=results)

@router.get("/cache/stats", response_model=CacheStats, tags=["Health & Stats"])
@limiter.limit("10/minute")
async def get_cache_stats(request: Request, admin: bool = Depends(get_admin_key), services: Services = Depends(get_services)):
    try:
        stats = await services.cache.stats()
        return CacheStats(status="ok", backend=services.cache.backend, key_count=stats.get("key_count", 0), used_memory=stats.get("used_memory", "N/A"))
    except Exception as e:
        logger.warning(f"Cache stats unavailable: {e}")
        return CacheStats(status="error", backend=services.cache.backend, key_count=0, used_memory="0B")

@router.get("/genres", response_model=List[GenreInfo], tags=["Discovery"])
@limiter.limit("20/minute")
async def get_genres(request: Request):
    return [GenreInfo(key=g.key, label=g.label, list_name=g.list_name, subject_tags=list(g.subject_tags)) for g in GENRE_TAXONOMY]

@router.get("/recommendations/{user_id}", response_model=List[Book], tags=["Discovery"])
@limiter.limit("30/minute")
async def get_recommendations(request: Request, user_id: str, services: Services = Depends(get_services)):
    return await services.discovery.recommendations(user_id)

@router.get("/new-releases/{user_id}", response_model=List[Book], tags=["Releases"])
@limiter.limit("30/minute")
async def get_new_releases(request: Request, user_id: str, services: Services = Depends(get_services)):
    return await services.releases.new_releases(user_id)

@router.get("/last-releases/{user_id}", response_model=Dict[str, List[Book]], tags=["Releases"])
@limiter.limit("30/minute")
async def get_last_releases(request: Request, user_id: str, services: Services = Depends(get_services)):
    return await services.releases.last_releases(user_id)

@router.get("/proxy-image", tags=["Images"])
@limiter.limit("120/minute")
async def proxy_image(request: Request, url: Optional[str] = None, services: Services = Depends(get_services)):
    if not url: raise MissingParameter("url")
    try:
        payload, content_type = await services.images.get_image(url)
    except UpstreamError as e:
        code = e.status_code if e.status_code and e.status_code >= 400 else status.HTTP_502_BAD_GATEWAY
        raise HTTPException(status_code=code, detail="Failed to fetch image")
    return Response(content=payload, media_type=content_type, headers={"Cache-Control": "public, max-age=86400"})

# --------------------------------------------------------------------
# 5. Application
# --------------------------------------------------------------------

async def missing_parameter_handler(request: Request, exc: MissingParameter):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})

async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.error(f"Request {request.url.path} failed on {exc.source}: {exc}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": f"Failed to reach {exc.source}"})

def create_app(services: Optional[Services] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.services is None
        if owned:
            app.state.services = build_services()
        logger.info("Shelfwise Discovery API starting up...")
        yield
        if owned:
            await app.state.services.aclose()
        logger.info("Shelfwise Discovery API shutting down...")

    app = FastAPI(
        title="Shelfwise Discovery API",
        description="Library-driven book recommendations, author release tracking and a cached cover proxy.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(MissingParameter, missing_parameter_handler)
    app.add_exception_handler(UpstreamError, upstream_error_handler)
    app.include_router(router)
    return app

app = create_app()
