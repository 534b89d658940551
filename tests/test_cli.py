"""CLI tests for fetch-price, products and serve commands."""

import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner
from loguru import logger

sys.path.insert(0, str(Path(__file__).parent.parent))

from goldcatalog.channels import ContentChannel
from goldcatalog.cli import cli, setup_logging
from goldcatalog.errors import FetchTimeoutError


class StaticChannel(ContentChannel):
    name = "static"

    def __init__(self, html=None, error=None):
        self.html = html
        self.error = error

    def fetch_raw_content(self, source_url, timeout_ms=None):
        if self.error:
            raise self.error
        return self.html


GRAM_HTML = (
    '<li class="flex items-center">'
    '<p class="CommodityPrice_priceName__Ehicd">Gram</p>'
    '<p class="CommodityPrice_convertPrice__5Addh">85,20</p></li>'
)


@patch("goldcatalog.cli.setup_logging")
@patch("goldcatalog.cli.ensure_directories")
class TestCli(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.tmp = tempfile.TemporaryDirectory()
        catalog_path = Path(self.tmp.name) / "products.json"
        catalog_path.write_text(
            json.dumps([
                {"id": 1, "name": "Ring", "weight": 2, "popularityScore": 0.5},
                {"id": 2, "name": "Band", "weight": 1, "popularityScore": 0.8},
            ]),
            encoding="utf-8",
        )
        self.config = {
            "catalog": {"path": str(catalog_path)},
            "refresh": {"max_attempts": 2, "backoff": {"multiplier": 0, "min_seconds": 0, "max_seconds": 0}},
            "logging": {},
        }

    def tearDown(self):
        self.tmp.cleanup()

    def test_products_with_explicit_gold_price(self, *_mocks):
        with patch("goldcatalog.cli.load_config", return_value=self.config):
            result = self.runner.invoke(cli, ["products", "--gold-price", "100", "--sort-by", "rating"])

        self.assertEqual(result.exit_code, 0, result.output)
        payload = json.loads(result.output)
        self.assertEqual([p["id"] for p in payload], [2, 1])
        self.assertEqual(payload[1]["price"], 300)

    def test_products_min_price_filter(self, *_mocks):
        with patch("goldcatalog.cli.load_config", return_value=self.config):
            result = self.runner.invoke(cli, ["products", "--gold-price", "100", "--min-price", "301"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(json.loads(result.output), [])

    def test_products_scrapes_when_no_price_given(self, *_mocks):
        with patch("goldcatalog.cli.load_config", return_value=self.config), \
                patch("goldcatalog.refresher.build_channel", return_value=StaticChannel(GRAM_HTML)):
            result = self.runner.invoke(cli, ["products"])

        self.assertEqual(result.exit_code, 0, result.output)
        # round(1.5 * 2 * 85.2) = 256
        self.assertEqual(json.loads(result.output)[0]["price"], 256)

    def test_products_missing_catalog(self, *_mocks):
        self.config["catalog"]["path"] = str(Path(self.tmp.name) / "missing.json")
        with patch("goldcatalog.cli.load_config", return_value=self.config):
            result = self.runner.invoke(cli, ["products", "--gold-price", "100"])

        self.assertEqual(result.exit_code, 1)

    def test_fetch_price_success(self, *_mocks):
        with patch("goldcatalog.cli.load_config", return_value=self.config), \
                patch("goldcatalog.cli.build_channel", return_value=StaticChannel(GRAM_HTML)):
            result = self.runner.invoke(cli, ["fetch-price"])

        self.assertEqual(result.exit_code, 0, result.output)
        payload = json.loads(result.output)
        self.assertTrue(payload["success"])
        self.assertEqual(payload["price"], 85.2)

    def test_fetch_price_failure_reports_fallback(self, *_mocks):
        channel = StaticChannel(error=FetchTimeoutError("slow"))
        with patch("goldcatalog.cli.load_config", return_value=self.config), \
                patch("goldcatalog.cli.build_channel", return_value=channel):
            result = self.runner.invoke(cli, ["fetch-price", "--attempts", "1", "--strategy", "http"])

        self.assertEqual(result.exit_code, 2, result.output)
        payload = json.loads(result.output)
        self.assertFalse(payload["success"])
        self.assertTrue(payload["fallback_applied"])
        self.assertEqual(payload["attempts"], 1)
        self.assertEqual(payload["price"], 92.67)

    def test_fetch_price_rejects_zero_attempts(self, *_mocks):
        with patch("goldcatalog.cli.load_config", return_value=self.config), \
                patch("goldcatalog.cli.build_channel") as mock_build:
            result = self.runner.invoke(cli, ["fetch-price", "--attempts", "0"])

        self.assertEqual(result.exit_code, 2)
        self.assertIn("Invalid value for '--attempts'", result.output)
        mock_build.assert_not_called()

    def test_serve_runs_uvicorn(self, *_mocks):
        with patch("goldcatalog.cli.load_config", return_value=self.config), \
                patch("goldcatalog.cli.create_app") as mock_create_app, \
                patch("goldcatalog.cli.uvicorn.run") as mock_run:
            result = self.runner.invoke(cli, ["serve", "--port", "8080"])

        self.assertEqual(result.exit_code, 0, result.output)
        mock_create_app.assert_called_once_with(self.config)
        mock_run.assert_called_once()
        self.assertEqual(mock_run.call_args.kwargs["port"], 8080)
        self.assertEqual(mock_run.call_args.kwargs["host"], "0.0.0.0")

    def test_config_error_exits(self, *_mocks):
        with patch("goldcatalog.cli.load_config", side_effect=FileNotFoundError("no config")):
            result = self.runner.invoke(cli, ["products"])

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Error loading configuration", result.output)


class TestSetupLogging(unittest.TestCase):
    def tearDown(self):
        logger.remove()

    def test_file_sink_uses_its_own_level(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = {
                "_config_dir": tmp,
                "logging": {"level": "warning", "file": "logs/app.log", "file_level": "debug"},
            }
            setup_logging(config)
            logger.debug("refresh detail")
            logger.remove()

            content = (Path(tmp) / "logs" / "app.log").read_text(encoding="utf-8")

        self.assertIn("DEBUG", content)
        self.assertIn("refresh detail", content)

    def test_empty_file_setting_disables_file_sink(self):
        with tempfile.TemporaryDirectory() as tmp:
            setup_logging({"_config_dir": tmp, "logging": {"file": ""}})
            logger.info("console only")
            logger.remove()

            self.assertEqual(list(Path(tmp).iterdir()), [])


if __name__ == "__main__":
    unittest.main()
