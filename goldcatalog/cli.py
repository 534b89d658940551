"""Command-line interface for the gold catalog service."""

import json
import sys
from typing import Optional

import click
import uvicorn
from loguru import logger

from goldcatalog.api import create_app
from goldcatalog.catalog import CatalogError, load_catalog
from goldcatalog.channels import CHANNELS, build_channel
from goldcatalog.config_loader import (
    as_int,
    ensure_directories,
    get_api_config,
    get_catalog_config,
    load_config,
    resolve_path,
)
from goldcatalog.price_cache import CachedPrice
from goldcatalog.pricing import SORT_OPTIONS, ProductQuery, query_products
from goldcatalog.refresher import PriceRefresher


CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> <level>{level: <7}</level> <cyan>{name}</cyan>: {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} {level: <7} {name}:{line} {message}"


def setup_logging(config: dict):
    """Route loguru to stderr and, unless ``logging.file`` is empty, a rotating file.

    ``logging.file_level`` lets the file keep more detail than the console.
    """
    log_config = config.get("logging") or {}
    console_level = str(log_config.get("level", "INFO")).upper()

    logger.remove()
    logger.add(sys.stderr, level=console_level, format=log_config.get("console_format", CONSOLE_FORMAT))

    if not log_config.get("file", "data/logs/goldcatalog.log"):
        return
    log_file = resolve_path(config, log_config.get("file", "data/logs/goldcatalog.log"))
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(log_file),
        level=str(log_config.get("file_level", console_level)).upper(),
        format=log_config.get("file_format", FILE_FORMAT),
        rotation=log_config.get("rotation", "1 week"),
        retention=log_config.get("retention", "1 month"),
        encoding="utf-8",
    )


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """Gold Catalog - product prices indexed on the live gold price."""
    ctx.ensure_object(dict)

    try:
        cfg = load_config(config)
        if verbose:
            cfg.setdefault("logging", {})["level"] = "DEBUG"
        ctx.obj["config"] = cfg
        ctx.obj["config_path"] = config

        ensure_directories(cfg)
        setup_logging(cfg)

        logger.debug("Gold Catalog initialized")

    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", "-p", type=int, default=None, help="Port (default from config)")
@click.pass_context
def serve(ctx, host: Optional[str], port: Optional[int]):
    """Serve the products API, refreshing the gold price in background."""
    config = ctx.obj["config"]
    api_config = get_api_config(config)
    host = host or api_config.get("host", "0.0.0.0")
    port = port or as_int(api_config.get("port"), 3001)

    try:
        app = create_app(config)
    except (CatalogError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    logger.info(f"Server running on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_config=None)


@cli.command("fetch-price")
@click.option(
    "--strategy",
    type=click.Choice(sorted(CHANNELS), case_sensitive=False),
    default=None,
    help="Acquisition channel (default from config)",
)
@click.option("--attempts", "-n", type=click.IntRange(min=1), default=None, help="Max attempts for this cycle")
@click.pass_context
def fetch_price(ctx, strategy: Optional[str], attempts: Optional[int]):
    """Run a single acquisition cycle and print the result."""
    config = ctx.obj["config"]
    refresher = PriceRefresher.from_config(
        config,
        CachedPrice(),
        channel=build_channel(config, strategy),
        max_attempts=attempts,
    )
    result = refresher.run_cycle()

    click.echo(json.dumps(result.as_dict(), indent=2))
    if not result.success:
        sys.exit(2)


@cli.command()
@click.option("--min-price", default=None, help="Minimum price (inclusive)")
@click.option("--max-price", default=None, help="Maximum price (inclusive)")
@click.option("--min-rating", default=None, help="Minimum rating (inclusive)")
@click.option("--max-rating", default=None, help="Maximum rating (inclusive)")
@click.option("--sort-by", type=click.Choice(SORT_OPTIONS), default=None, help="Ordering")
@click.option("--gold-price", type=float, default=None, help="Use this price per gram instead of scraping")
@click.pass_context
def products(ctx, min_price, max_price, min_rating, max_rating, sort_by, gold_price: Optional[float]):
    """Print the priced catalog as JSON."""
    config = ctx.obj["config"]
    try:
        catalog = load_catalog(resolve_path(config, get_catalog_config(config).get("path", "data/products.json")))
    except CatalogError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if gold_price is None:
        price_cell = CachedPrice()
        PriceRefresher.from_config(config, price_cell).run_cycle()
        gold_price = price_cell.get()

    query = ProductQuery.from_params(min_price, max_price, min_rating, max_rating, sort_by)
    click.echo(json.dumps(query_products(catalog, gold_price, query), indent=2, ensure_ascii=False))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
