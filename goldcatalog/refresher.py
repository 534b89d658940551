"""Periodic gold price refresh with retry and fallback."""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from loguru import logger
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from goldcatalog.channels import ContentChannel, build_channel
from goldcatalog.config_loader import (
    DEFAULT_FALLBACK_PRICE,
    DEFAULT_SOURCE_URL,
    as_float,
    as_int,
    get_extraction_config,
    get_refresh_config,
    get_source_config,
)
from goldcatalog.errors import AcquisitionError
from goldcatalog.extractor import ExtractionTarget, PriceExtractor
from goldcatalog.price_cache import CachedPrice, SOURCE_SCRAPED


@dataclass
class CycleResult:
    """Outcome of one acquisition cycle."""

    success: bool
    attempts: int
    price: Optional[float]
    source: Optional[str]
    fallback_applied: bool = False
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "attempts": self.attempts,
            "price": self.price,
            "source": self.source,
            "fallback_applied": self.fallback_applied,
            "error": self.error,
        }


class PriceRefresher:
    """Owns the refresh schedule for a :class:`CachedPrice`.

    One cycle tries the channel and extractor up to ``max_attempts`` times.
    The first success is committed. If every attempt fails, the fallback
    price is committed only when the cell has never been set; otherwise the
    last good value keeps being served.
    """

    def __init__(
        self,
        price_cell: CachedPrice,
        channel: ContentChannel,
        extractor: PriceExtractor,
        source_url: str = DEFAULT_SOURCE_URL,
        timeout_ms: Optional[int] = None,
        max_attempts: int = 3,
        interval_seconds: float = 60.0,
        fallback_price: float = DEFAULT_FALLBACK_PRICE,
        backoff_multiplier: float = 1.0,
        backoff_min_seconds: float = 1.0,
        backoff_max_seconds: float = 10.0,
        sleep: Optional[Callable[[float], Any]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.price_cell = price_cell
        self.channel = channel
        self.extractor = extractor
        self.source_url = source_url
        self.timeout_ms = timeout_ms
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self.fallback_price = fallback_price
        self.backoff_multiplier = backoff_multiplier
        self.backoff_min_seconds = backoff_min_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self._stop_event = threading.Event()
        # Backoff waits end early once stop() is called.
        self._sleep = sleep or self._stop_event.wait
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        price_cell: CachedPrice,
        channel: Optional[ContentChannel] = None,
        **overrides: Any,
    ) -> "PriceRefresher":
        source_config = get_source_config(config)
        refresh_config = get_refresh_config(config)
        backoff_config = refresh_config.get("backoff", {}) or {}

        settings = {
            "source_url": source_config.get("url") or DEFAULT_SOURCE_URL,
            "max_attempts": as_int(refresh_config.get("max_attempts"), 3),
            "interval_seconds": as_float(refresh_config.get("interval_seconds"), 60.0),
            "fallback_price": as_float(refresh_config.get("fallback_price"), DEFAULT_FALLBACK_PRICE),
            "backoff_multiplier": as_float(backoff_config.get("multiplier"), 1.0),
            "backoff_min_seconds": as_float(backoff_config.get("min_seconds"), 1.0),
            "backoff_max_seconds": as_float(backoff_config.get("max_seconds"), 10.0),
        }
        settings.update({k: v for k, v in overrides.items() if v is not None})

        return cls(
            price_cell=price_cell,
            channel=channel or build_channel(config),
            extractor=PriceExtractor(ExtractionTarget.from_config(get_extraction_config(config))),
            **settings,
        )

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts) | stop_when_event_set(self._stop_event),
            wait=wait_exponential(
                multiplier=self.backoff_multiplier,
                min=self.backoff_min_seconds,
                max=self.backoff_max_seconds,
            ),
            retry=retry_if_exception_type(AcquisitionError),
            sleep=self._sleep,
            reraise=True,
        )

    def acquire_once(self) -> float:
        """Fetch the source page and extract the price, a single attempt."""
        content = self.channel.fetch_raw_content(self.source_url, self.timeout_ms)
        return self.extractor.extract(content)

    def run_cycle(self) -> CycleResult:
        """Run one acquisition cycle. Never raises on acquisition failure."""
        attempts = 0
        try:
            for attempt in self._retrying():
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    try:
                        price = self.acquire_once()
                    except AcquisitionError as e:
                        logger.warning(f"Attempt {attempts}/{self.max_attempts} failed: {e}")
                        raise
        except Exception as e:
            if not isinstance(e, AcquisitionError):
                logger.exception(f"Unexpected error refreshing gold price on attempt {attempts}")
            return self._degrade(attempts, e)

        snapshot = self.price_cell.set(price, source=SOURCE_SCRAPED)
        logger.info(f"Gold price per gram updated: {snapshot.value:.2f} USD (attempt {attempts})")
        return CycleResult(success=True, attempts=attempts, price=snapshot.value, source=snapshot.source)

    def _degrade(self, attempts: int, error: Exception) -> CycleResult:
        fallback_applied = self.price_cell.set_default_if_unset(self.fallback_price)
        snapshot = self.price_cell.snapshot()
        if fallback_applied:
            logger.warning(f"All {attempts} attempts failed; using fallback gold price {snapshot.value:.2f} USD")
        else:
            logger.warning(f"All {attempts} attempts failed; keeping last known gold price {snapshot.value:.2f} USD")
        return CycleResult(
            success=False,
            attempts=attempts,
            price=snapshot.value,
            source=snapshot.source,
            fallback_applied=fallback_applied,
            error=str(error),
        )

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> CycleResult:
        """Run the first cycle synchronously, then schedule the rest in background."""
        if self.is_running:
            raise RuntimeError("Price refresher already running")
        self._stop_event.clear()
        first = self.run_cycle()

        self._thread = threading.Thread(target=self._run_periodic, name="gold-price-refresher", daemon=True)
        self._thread.start()
        logger.info(f"Gold price refresher scheduled every {self.interval_seconds:g}s")
        return first

    def stop(self, timeout: Optional[float] = None):
        """Cancel the schedule and wait for an in-flight cycle to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                # Keep the reference so start() refuses until this cycle ends.
                logger.warning("Gold price refresher did not stop before timeout")
                return
            logger.info("Gold price refresher stopped")
        self._thread = None

    def _run_periodic(self):
        # Cycles run back to back in this one thread, so they never overlap.
        next_run = time.monotonic() + self.interval_seconds
        while not self._stop_event.wait(max(0.0, next_run - time.monotonic())):
            started = time.monotonic()
            try:
                self.run_cycle()
            except Exception:
                logger.exception("Gold price refresh cycle crashed")
            next_run = started + self.interval_seconds
