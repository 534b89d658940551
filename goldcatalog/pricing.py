"""Gold-indexed product pricing, filtering and ordering."""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from goldcatalog.catalog import CatalogEntry


SORT_PRICE = "price"
SORT_RATING = "rating"
SORT_RATIO = "ratio"
SORT_OPTIONS = (SORT_PRICE, SORT_RATING, SORT_RATIO)


def _to_decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def round_half_up(value: Decimal, places: int = 0) -> Decimal:
    """Round to ``places`` decimals with ties going away from zero."""
    exponent = Decimal(1).scaleb(-places)
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


def compute_price(entry: CatalogEntry, gold_price: float) -> int:
    """Price formula: (popularityScore + 1) * weight * gold price per gram."""
    raw = (_to_decimal(entry.popularity_score) + 1) * _to_decimal(entry.weight) * _to_decimal(gold_price)
    return int(round_half_up(raw))


def compute_rating(entry: CatalogEntry) -> float:
    """Map popularityScore in [0, 1] to a 0-5 rating with one decimal."""
    return float(round_half_up(_to_decimal(entry.popularity_score) * 5, 1))


def compute_entries(catalog: Iterable[CatalogEntry], gold_price: float) -> List[Dict[str, Any]]:
    """Build priced entries (catalog fields + price + rating) in catalog order."""
    entries = []
    for entry in catalog:
        priced = dict(entry.record)
        priced["images"] = dict(entry.images)
        priced["price"] = compute_price(entry, gold_price)
        priced["rating"] = compute_rating(entry)
        entries.append(priced)
    return entries


def parse_optional_number(value: Optional[str]) -> Optional[float]:
    """Parse a query-string bound; anything malformed counts as absent."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def value_ratio(entry: Dict[str, Any]) -> float:
    """rating / price, with a zero price ranked as infinitely good value.

    A free item with no rating has ratio 0.
    """
    price = entry["price"]
    rating = entry["rating"]
    if price == 0:
        return math.inf if rating > 0 else 0.0
    return rating / price


@dataclass(frozen=True)
class ProductQuery:
    """Optional filter bounds and ordering for the products listing."""

    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_rating: Optional[float] = None
    max_rating: Optional[float] = None
    sort_by: Optional[str] = None

    @classmethod
    def from_params(
        cls,
        min_price: Optional[str] = None,
        max_price: Optional[str] = None,
        min_rating: Optional[str] = None,
        max_rating: Optional[str] = None,
        sort_by: Optional[str] = None,
    ) -> "ProductQuery":
        return cls(
            min_price=parse_optional_number(min_price),
            max_price=parse_optional_number(max_price),
            min_rating=parse_optional_number(min_rating),
            max_rating=parse_optional_number(max_rating),
            sort_by=sort_by if sort_by in SORT_OPTIONS else None,
        )

    def matches(self, entry: Dict[str, Any]) -> bool:
        if self.min_price is not None and entry["price"] < self.min_price:
            return False
        if self.max_price is not None and entry["price"] > self.max_price:
            return False
        if self.min_rating is not None and entry["rating"] < self.min_rating:
            return False
        if self.max_rating is not None and entry["rating"] > self.max_rating:
            return False
        return True


def apply_query(entries: List[Dict[str, Any]], query: ProductQuery) -> List[Dict[str, Any]]:
    """Filter and order priced entries. Sorting is stable on catalog order."""
    result = [entry for entry in entries if query.matches(entry)]

    if query.sort_by == SORT_PRICE:
        result.sort(key=lambda entry: entry["price"])
    elif query.sort_by == SORT_RATING:
        result.sort(key=lambda entry: entry["rating"], reverse=True)
    elif query.sort_by == SORT_RATIO:
        result.sort(key=value_ratio, reverse=True)

    return result


def query_products(catalog: Iterable[CatalogEntry], gold_price: float, query: ProductQuery) -> List[Dict[str, Any]]:
    return apply_query(compute_entries(catalog, gold_price), query)
