"""HTTP API exposing the gold-priced product catalog."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from goldcatalog import __version__
from goldcatalog.catalog import Catalog, load_catalog
from goldcatalog.config_loader import (
    DEFAULT_FALLBACK_PRICE,
    as_float,
    get_api_config,
    get_catalog_config,
    get_refresh_config,
    resolve_path,
)
from goldcatalog.price_cache import CachedPrice
from goldcatalog.pricing import ProductQuery, query_products
from goldcatalog.refresher import PriceRefresher


def create_app(
    config: Dict[str, Any],
    catalog: Optional[Catalog] = None,
    price_cell: Optional[CachedPrice] = None,
    refresher: Optional[PriceRefresher] = None,
    start_refresher: bool = True,
) -> FastAPI:
    """Wire catalog, cached price and refresher into a FastAPI app.

    On startup the first refresh cycle completes before the app serves
    requests; the periodic refresh is cancelled on shutdown.
    """
    api_config = get_api_config(config)
    if catalog is None:
        catalog_path = get_catalog_config(config).get("path", "data/products.json")
        catalog = load_catalog(resolve_path(config, catalog_path))
    if price_cell is None:
        price_cell = refresher.price_cell if refresher is not None else CachedPrice()
    if refresher is None and start_refresher:
        refresher = PriceRefresher.from_config(config, price_cell)

    fallback_price = as_float(get_refresh_config(config).get("fallback_price"), DEFAULT_FALLBACK_PRICE)
    stop_timeout = as_float(api_config.get("shutdown_timeout_seconds"), 5.0)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_refresher and refresher is not None:
            logger.info("Running initial gold price refresh before serving requests")
            await run_in_threadpool(refresher.start)
        try:
            yield
        finally:
            if refresher is not None and refresher.is_running:
                await run_in_threadpool(refresher.stop, stop_timeout)

    app = FastAPI(title="Gold Catalog API", version=__version__, lifespan=lifespan)
    app.state.catalog = catalog
    app.state.price_cell = price_cell
    app.state.refresher = refresher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.get("cors_origins") or ["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    def _current_gold_price() -> float:
        gold_price = price_cell.get()
        if gold_price is None:
            logger.warning("Gold price requested before first refresh; serving fallback")
            return fallback_price
        return gold_price

    @app.get("/api/products")
    def get_products(
        request: Request,
        min_price: Optional[str] = Query(default=None, alias="minPrice"),
        max_price: Optional[str] = Query(default=None, alias="maxPrice"),
        min_rating: Optional[str] = Query(default=None, alias="minRating"),
        max_rating: Optional[str] = Query(default=None, alias="maxRating"),
        sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    ):
        query = ProductQuery.from_params(
            min_price=min_price,
            max_price=max_price,
            min_rating=min_rating,
            max_rating=max_rating,
            sort_by=sort_by,
        )
        return query_products(request.app.state.catalog, _current_gold_price(), query)

    @app.get("/api/gold-price")
    def get_gold_price():
        snapshot = price_cell.snapshot()
        payload = {"currency": "USD", "unit": "gram"}
        if snapshot is None:
            payload.update({"price": fallback_price, "source": "fallback", "updated_at": None})
        else:
            payload.update(snapshot.as_dict())
        return payload

    return app
