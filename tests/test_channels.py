"""Tests for HTTP and headless-browser acquisition channels."""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import requests
from playwright.sync_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

sys.path.insert(0, str(Path(__file__).parent.parent))

from goldcatalog.channels import BrowserChannel, HttpChannel, build_channel
from goldcatalog.errors import FetchTimeoutError, HttpError, NetworkError

URL = "https://www.kitco.com/charts/gold"


class TestHttpChannel(unittest.TestCase):
    def setUp(self):
        self.channel = HttpChannel(timeout_ms=5000)

    def test_returns_body_on_success(self):
        with patch("goldcatalog.channels.requests.get") as mock_get:
            mock_get.return_value = Mock(status_code=200, text="<html>ok</html>")
            content = self.channel.fetch_raw_content(URL)

        self.assertEqual(content, "<html>ok</html>")
        self.assertEqual(mock_get.call_args.kwargs["timeout"], 5.0)

    def test_explicit_timeout_overrides_default(self):
        with patch("goldcatalog.channels.requests.get") as mock_get:
            mock_get.return_value = Mock(status_code=200, text="")
            self.channel.fetch_raw_content(URL, timeout_ms=1500)

        self.assertEqual(mock_get.call_args.kwargs["timeout"], 1.5)

    def test_http_status_error(self):
        with patch("goldcatalog.channels.requests.get") as mock_get:
            mock_get.return_value = Mock(status_code=503, text="")
            with self.assertRaises(HttpError) as ctx:
                self.channel.fetch_raw_content(URL)

        self.assertEqual(ctx.exception.status, 503)

    def test_timeout_maps_to_fetch_timeout(self):
        with patch("goldcatalog.channels.requests.get", side_effect=requests.Timeout("slow")):
            with self.assertRaises(FetchTimeoutError):
                self.channel.fetch_raw_content(URL)

    def test_connection_error_maps_to_network_error(self):
        with patch("goldcatalog.channels.requests.get", side_effect=requests.ConnectionError("reset")):
            with self.assertRaises(NetworkError):
                self.channel.fetch_raw_content(URL)


class TestBrowserChannel(unittest.TestCase):
    def setUp(self):
        self.patcher = patch("goldcatalog.channels.sync_playwright")
        mock_sync_playwright = self.patcher.start()
        self.playwright = MagicMock()
        mock_sync_playwright.return_value.start.return_value = self.playwright
        self.browser = self.playwright.chromium.launch.return_value
        self.context = self.browser.new_context.return_value
        self.page = self.context.new_page.return_value
        self.page.goto.return_value = Mock(status=200)
        self.page.content.return_value = "<html>rendered</html>"
        self.channel = BrowserChannel(navigation_timeout_ms=30000, selector_timeout_ms=15000)

    def tearDown(self):
        self.patcher.stop()

    def _assert_released(self):
        self.context.close.assert_called_once()
        self.browser.close.assert_called_once()
        self.playwright.stop.assert_called_once()

    def test_returns_rendered_dom_and_closes_browser(self):
        content = self.channel.fetch_raw_content(URL)

        self.assertEqual(content, "<html>rendered</html>")
        self.page.goto.assert_called_once_with(URL, wait_until="domcontentloaded", timeout=30000)
        self.page.wait_for_selector.assert_called_once_with("li.flex.items-center", timeout=15000)
        self._assert_released()

    def test_selector_wait_never_exceeds_attempt_timeout(self):
        self.channel.fetch_raw_content(URL, timeout_ms=5000)
        self.page.wait_for_selector.assert_called_once_with("li.flex.items-center", timeout=5000)

    def test_timeout_releases_browser(self):
        self.page.wait_for_selector.side_effect = PlaywrightTimeout("Timeout 15000ms exceeded")

        with self.assertRaises(FetchTimeoutError):
            self.channel.fetch_raw_content(URL)
        self._assert_released()

    def test_browser_error_maps_to_network_error(self):
        self.page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

        with self.assertRaises(NetworkError):
            self.channel.fetch_raw_content(URL)
        self._assert_released()

    def test_error_status_raises_http_error_and_releases(self):
        self.page.goto.return_value = Mock(status=403)

        with self.assertRaises(HttpError) as ctx:
            self.channel.fetch_raw_content(URL)
        self.assertEqual(ctx.exception.status, 403)
        self.page.content.assert_not_called()
        self._assert_released()

    def test_close_failure_does_not_mask_result(self):
        self.browser.close.side_effect = PlaywrightError("Target closed")

        self.assertEqual(self.channel.fetch_raw_content(URL), "<html>rendered</html>")
        self.playwright.stop.assert_called_once()


class TestBuildChannel(unittest.TestCase):
    def test_selects_http_strategy(self):
        channel = build_channel({"source": {"strategy": "http", "http_timeout_ms": "2000"}})
        self.assertIsInstance(channel, HttpChannel)
        self.assertEqual(channel.timeout_ms, 2000)

    def test_defaults_to_browser_with_extraction_container(self):
        channel = build_channel({"extraction": {"container_selector": "li.price-row"}})
        self.assertIsInstance(channel, BrowserChannel)
        self.assertEqual(channel.wait_selector, "li.price-row")

    def test_explicit_strategy_wins_over_config(self):
        channel = build_channel({"source": {"strategy": "browser"}}, strategy="HTTP")
        self.assertIsInstance(channel, HttpChannel)

    def test_unknown_strategy_rejected(self):
        with self.assertRaises(ValueError):
            build_channel({"source": {"strategy": "carrier-pigeon"}})


if __name__ == "__main__":
    unittest.main()
