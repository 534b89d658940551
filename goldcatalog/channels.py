"""Acquisition channels that turn a source URL into parsable HTML."""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import requests
from loguru import logger
from playwright.sync_api import Error as PlaywrightError, Page, sync_playwright, TimeoutError as PlaywrightTimeout

from goldcatalog.config_loader import as_bool, as_int, get_extraction_config, get_source_config
from goldcatalog.errors import FetchTimeoutError, HttpError, NetworkError
from goldcatalog.extractor import DEFAULT_CONTAINER_SELECTOR


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


class ContentChannel(ABC):
    """Produce parsable page content for a given URL."""

    name = "base"

    @abstractmethod
    def fetch_raw_content(self, source_url: str, timeout_ms: Optional[int] = None) -> str:
        """Fetch ``source_url`` and return its HTML.

        Raises:
            FetchTimeoutError: The fetch or render exceeded ``timeout_ms``.
            NetworkError: Transport failure.
            HttpError: Non-success HTTP status.
        """


class HttpChannel(ContentChannel):
    """Plain HTTP GET. Fast, but sees only server-rendered markup."""

    name = "http"

    def __init__(self, timeout_ms: int = 15000, user_agent: str = DEFAULT_USER_AGENT):
        self.timeout_ms = timeout_ms
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }

    def fetch_raw_content(self, source_url: str, timeout_ms: Optional[int] = None) -> str:
        timeout_seconds = (timeout_ms or self.timeout_ms) / 1000.0
        logger.debug(f"GET {source_url} (timeout={timeout_seconds:.1f}s)")
        try:
            response = requests.get(source_url, headers=self.headers, timeout=timeout_seconds)
        except requests.Timeout as e:
            raise FetchTimeoutError(f"Timed out fetching {source_url}: {e}") from e
        except requests.RequestException as e:
            raise NetworkError(f"Request to {source_url} failed: {e}") from e

        if response.status_code >= 400:
            raise HttpError(response.status_code, source_url)
        return response.text


class BrowserChannel(ContentChannel):
    """Headless Chromium render via Playwright.

    A fresh browser is launched for every fetch and always closed before the
    call returns, whether it succeeds or raises.
    """

    name = "browser"

    def __init__(
        self,
        navigation_timeout_ms: int = 30000,
        selector_timeout_ms: int = 15000,
        wait_selector: Optional[str] = DEFAULT_CONTAINER_SELECTOR,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.navigation_timeout_ms = navigation_timeout_ms
        self.selector_timeout_ms = selector_timeout_ms
        self.wait_selector = wait_selector
        self.headless = headless
        self.user_agent = user_agent

    @contextmanager
    def _browser_page(self) -> Iterator[Page]:
        """Launch a browser and yield a page, closing everything on exit."""
        playwright = sync_playwright().start()
        browser = None
        context = None
        try:
            browser = playwright.chromium.launch(
                headless=self.headless,
                args=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"],
            )
            context = browser.new_context(user_agent=self.user_agent)
            yield context.new_page()
        finally:
            if context:
                try:
                    context.close()
                except PlaywrightError as e:
                    logger.debug(f"Ignoring error while closing browser context: {e}")
            if browser:
                try:
                    browser.close()
                except PlaywrightError as e:
                    logger.debug(f"Ignoring error while closing browser: {e}")
            playwright.stop()
            logger.debug("Browser closed")

    def fetch_raw_content(self, source_url: str, timeout_ms: Optional[int] = None) -> str:
        navigation_timeout = timeout_ms or self.navigation_timeout_ms
        selector_timeout = min(self.selector_timeout_ms, navigation_timeout)
        logger.debug(f"Rendering {source_url} in headless browser (timeout={navigation_timeout}ms)")
        try:
            with self._browser_page() as page:
                response = page.goto(
                    source_url,
                    wait_until="domcontentloaded",
                    timeout=navigation_timeout,
                )
                if response is not None and response.status >= 400:
                    raise HttpError(response.status, source_url)
                if self.wait_selector:
                    page.wait_for_selector(self.wait_selector, timeout=selector_timeout)
                return page.content()
        except PlaywrightTimeout as e:
            raise FetchTimeoutError(f"Timed out rendering {source_url}: {e}") from e
        except PlaywrightError as e:
            raise NetworkError(f"Browser failed loading {source_url}: {e}") from e


CHANNELS = {
    HttpChannel.name: HttpChannel,
    BrowserChannel.name: BrowserChannel,
}


def build_channel(config: Dict[str, Any], strategy: Optional[str] = None) -> ContentChannel:
    """Build the acquisition channel selected by ``source.strategy``."""
    source_config = get_source_config(config)
    strategy = (strategy or source_config.get("strategy") or BrowserChannel.name).lower()
    user_agent = source_config.get("user_agent") or DEFAULT_USER_AGENT

    if strategy == HttpChannel.name:
        return HttpChannel(
            timeout_ms=as_int(source_config.get("http_timeout_ms"), 15000),
            user_agent=user_agent,
        )
    if strategy == BrowserChannel.name:
        browser_config = source_config.get("browser", {}) or {}
        wait_selector = get_extraction_config(config).get("container_selector") or DEFAULT_CONTAINER_SELECTOR
        return BrowserChannel(
            navigation_timeout_ms=as_int(source_config.get("navigation_timeout_ms"), 30000),
            selector_timeout_ms=as_int(source_config.get("selector_timeout_ms"), 15000),
            wait_selector=wait_selector,
            headless=as_bool(browser_config.get("headless"), True),
            user_agent=user_agent,
        )

    raise ValueError(f"Unknown acquisition strategy '{strategy}'. Use one of: {', '.join(sorted(CHANNELS))}")
