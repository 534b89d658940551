"""Gold price extraction from fetched chart page HTML."""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Union

from bs4 import BeautifulSoup, Tag
from loguru import logger

from goldcatalog.config_loader import as_bool
from goldcatalog.errors import ExtractionError


DEFAULT_CONTAINER_SELECTOR = "li.flex.items-center"
DEFAULT_LABEL_SELECTOR = "p.CommodityPrice_priceName__Ehicd"
DEFAULT_VALUE_SELECTOR = "p.CommodityPrice_convertPrice__5Addh"
DEFAULT_DOWN_MARKER_CLASS = "CommodityPrice_down__WC3cT"
DEFAULT_UNIT_KEYWORD = "gram"

CURRENCY_PATTERN = re.compile(r"[$€£¥]|\b(?:USD|EUR|GBP)\b", re.IGNORECASE)
DECIMAL_PATTERN = re.compile(r"\d+(?:\.\d+)?")


@dataclass(frozen=True)
class ExtractionTarget:
    """Structural locator for the per-gram price node.

    The chart page lists several ``container`` rows (ounce, gram, kilo...).
    The row whose ``label`` text contains ``unit_keyword`` is the target, and
    the price sits in its ``value`` node. When ``exclude_down_marker`` is set,
    value nodes carrying ``down_marker_class`` (the red daily change figure)
    are skipped.
    """

    container_selector: str = DEFAULT_CONTAINER_SELECTOR
    label_selector: str = DEFAULT_LABEL_SELECTOR
    value_selector: str = DEFAULT_VALUE_SELECTOR
    unit_keyword: str = DEFAULT_UNIT_KEYWORD
    down_marker_class: str = DEFAULT_DOWN_MARKER_CLASS
    exclude_down_marker: bool = True

    @classmethod
    def from_config(cls, extraction_config: Dict[str, Any]) -> "ExtractionTarget":
        return cls(
            container_selector=extraction_config.get("container_selector") or DEFAULT_CONTAINER_SELECTOR,
            label_selector=extraction_config.get("label_selector") or DEFAULT_LABEL_SELECTOR,
            value_selector=extraction_config.get("value_selector") or DEFAULT_VALUE_SELECTOR,
            unit_keyword=extraction_config.get("unit_keyword") or DEFAULT_UNIT_KEYWORD,
            down_marker_class=extraction_config.get("down_marker_class") or DEFAULT_DOWN_MARKER_CLASS,
            exclude_down_marker=as_bool(extraction_config.get("exclude_down_marker"), True),
        )

    @property
    def effective_value_selector(self) -> str:
        if self.exclude_down_marker and self.down_marker_class:
            return f"{self.value_selector}:not(.{self.down_marker_class})"
        return self.value_selector


def parse_price_text(price_text: Optional[str]) -> float:
    """Parse a displayed price such as ``"$ 123,45"`` into ``123.45``.

    Currency symbols and whitespace are stripped and a comma is read as the
    decimal point. Anything left that is not a plain decimal number is
    rejected.
    """
    if price_text is None:
        raise ExtractionError("Price node has no text")

    cleaned = CURRENCY_PATTERN.sub("", price_text)
    cleaned = "".join(cleaned.split())
    cleaned = cleaned.replace(",", ".")

    if not DECIMAL_PATTERN.fullmatch(cleaned):
        raise ExtractionError(f"Could not parse gold price from {price_text!r}")
    return float(cleaned)


class PriceExtractor:
    """Locate and parse the gold price inside fetched page content."""

    def __init__(self, target: Optional[ExtractionTarget] = None):
        self.target = target or ExtractionTarget()

    def _as_soup(self, document: Union[str, bytes, Tag]) -> Tag:
        if isinstance(document, Tag):
            return document
        return BeautifulSoup(document, "lxml")

    def find_target(self, candidates: Iterable[Tag]) -> Optional[Tag]:
        """Return the first candidate whose label mentions the unit keyword."""
        keyword = self.target.unit_keyword.lower()
        for candidate in candidates:
            label = candidate.select_one(self.target.label_selector)
            if label is None:
                continue
            if keyword in label.get_text(" ", strip=True).lower():
                return candidate
        return None

    def extract(self, document: Union[str, bytes, Tag]) -> float:
        """Extract the price per unit from raw HTML or an already parsed tree.

        Raises:
            ExtractionError: When no container matches, no label contains the
                unit keyword, the value node is missing, or its text is not a
                number.
        """
        soup = self._as_soup(document)
        candidates = soup.select(self.target.container_selector)
        if not candidates:
            raise ExtractionError(
                f"No elements match container selector '{self.target.container_selector}'"
            )

        match = self.find_target(candidates)
        if match is None:
            raise ExtractionError(
                f"Could not locate target element containing '{self.target.unit_keyword}'"
            )

        value_node = match.select_one(self.target.effective_value_selector)
        if value_node is None:
            raise ExtractionError("Could not find the price element in the target row")

        price = parse_price_text(value_node.get_text(strip=True))
        logger.debug(f"Extracted price {price} from {len(candidates)} candidate rows")
        return price
