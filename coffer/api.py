"""
Coffer Prices API
Read-only HTTP surface over the in-memory spot-price cache.
"""

import logging
import time
import traceback
from contextlib import asynccontextmanager
from enum import Enum
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coffer.aggregator import PriceAggregator
from coffer.cache import PriceCache
from coffer.config import SUPPORTED_CURRENCIES, TROY_OUNCE_GRAMS, Settings, get_settings
from coffer.errors import PersistenceError
from coffer.fetchers import create_http_client, default_fx_providers, default_metal_providers
from coffer.models import HealthResponse, PricesResponse, Snapshot, ValueResponse, default_snapshot
from coffer.scheduler import RefreshScheduler
from coffer.store import SqliteSnapshotStore


class Metal(str, Enum):
    gold = "gold"
    silver = "silver"


def load_initial_snapshot(store: SqliteSnapshotStore) -> Snapshot:
    """Stored snapshot if there is one, hardcoded defaults otherwise."""
    try:
        snapshot = store.load_snapshot()
    except PersistenceError as e:
        logging.error(f"[prices] Could not load stored prices: {e}")
        snapshot = None
    if snapshot is None:
        logging.info("[prices] No stored prices, starting from defaults")
        return default_snapshot()
    return snapshot


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    store = SqliteSnapshotStore(settings.db_path)
    cache = PriceCache(load_initial_snapshot(store))
    client = create_http_client(settings)
    aggregator = PriceAggregator(
        cache=cache,
        store=store,
        client=client,
        metal_providers=default_metal_providers(settings),
        fx_providers=default_fx_providers(),
        timeout=settings.fetch_timeout_seconds,
        gold_floor=settings.gold_sanity_floor,
    )
    scheduler = RefreshScheduler(aggregator.refresh, settings.refresh_interval_seconds)

    app.state.price_cache = cache
    app.state.aggregator = aggregator
    app.state.scheduler = scheduler
    app.state.started_at = time.monotonic()

    if settings.scheduler_enabled:
        scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()
        await client.aclose()


def get_price_cache(request: Request) -> PriceCache:
    return request.app.state.price_cache


# ══════════════════════════════════════════════════════════════════════════════
# FastAPI Application
# ══════════════════════════════════════════════════════════════════════════════

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    app = FastAPI(
        title="Coffer Prices API",
        description="""
Spot prices for **gold** and **silver** (USD per troy ounce) plus USD conversion
rates for INR, AED, EUR and GBP.

Prices are refreshed in the background every 5 minutes from a chain of public
sources. Reads never wait on the network: if every source is down you get the
last known values.
        """,
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings or get_settings()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # ══════════════════════════════════════════════════════════════════════════
    # API Endpoints
    # ══════════════════════════════════════════════════════════════════════════

    @app.get("/", tags=["Root"])
    async def root():
        """Welcome endpoint with API information."""
        return {
            "name": "Coffer Prices API",
            "version": "1.0.0",
            "documentation": "/docs",
            "endpoints": {
                "prices": "/api/prices",
                "value": "/api/value",
                "health": "/health",
            },
        }

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check(request: Request, cache: PriceCache = Depends(get_price_cache)):
        return HealthResponse(
            ok=True,
            uptime=round(time.monotonic() - request.app.state.started_at, 3),
            cache_age_seconds=cache.get_age_seconds(),
        )

    @app.get("/api/prices", response_model=PricesResponse, tags=["Prices"])
    async def get_prices(cache: PriceCache = Depends(get_price_cache)):
        """Current spot prices and FX rates, straight from the cache."""
        snapshot = cache.get_current_snapshot()
        return PricesResponse(
            gold=snapshot.gold_usd,
            silver=snapshot.silver_usd,
            rates={currency: snapshot.rate(currency) for currency in SUPPORTED_CURRENCIES},
            fetched_at=snapshot.fetched_at,
        )

    @app.get("/api/value", response_model=ValueResponse, tags=["Utilities"])
    async def get_value(
        metal: Metal,
        grams: float = Query(..., gt=0, description="Weight in grams"),
        purity: float = Query(default=1.0, gt=0, le=1, description="Fineness, e.g. 0.916 for 22k"),
        currency: str = Query(default="USD", description="Currency for the value"),
        cache: PriceCache = Depends(get_price_cache),
    ):
        """
        Value a holding at the current spot price.

        value = grams / 31.1035 × purity × spot (USD/oz) × rate
        """
        currency = currency.upper()
        if currency not in SUPPORTED_CURRENCIES:
            raise HTTPException(
                status_code=400,
                detail=f"Currency '{currency}' not supported. Use one of: {SUPPORTED_CURRENCIES}",
            )

        # One snapshot for both spot and rate
        snapshot = cache.get_current_snapshot()
        spot = snapshot.spot(metal.value) * snapshot.rate(currency)
        value = grams / TROY_OUNCE_GRAMS * purity * spot
        return ValueResponse(
            metal=metal.value,
            grams=grams,
            purity=purity,
            currency=currency,
            spot_per_troy_ounce=round(spot, 2),
            value=round(value, 2),
            fetched_at=snapshot.fetched_at,
        )

    # ══════════════════════════════════════════════════════════════════════════
    # Error Handlers
    # ══════════════════════════════════════════════════════════════════════════

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc):
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not Found",
                "message": "The requested endpoint does not exist.",
                "available_endpoints": ["/api/prices", "/api/value", "/health", "/docs"],
            },
        )

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logging.error(f"Unhandled exception in {request.url.path}: {traceback.format_exc()}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "message": "Something went wrong. Please try again.",
            },
        )

    return app
