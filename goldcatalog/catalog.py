"""Static product catalog."""

import json
import math
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Sequence, Union

from loguru import logger


REQUIRED_FIELDS = ("id", "name", "weight", "popularityScore")


class CatalogError(Exception):
    """Raised when the catalog file is missing or holds invalid records."""
    pass


@dataclass(frozen=True)
class CatalogEntry:
    """A product record as stored in ``products.json``.

    ``record`` keeps the original fields so responses echo whatever the
    catalog carries (``images`` per color variant included).
    """

    id: Any
    name: str
    weight: float
    popularity_score: float
    images: Mapping[str, str]
    record: Mapping[str, Any]

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CatalogEntry":
        if not isinstance(record, dict):
            raise CatalogError(f"Catalog records must be JSON objects, got {type(record).__name__}: {record!r}")
        missing = [field for field in REQUIRED_FIELDS if field not in record]
        if missing:
            raise CatalogError(f"Catalog record {record.get('id')!r} is missing fields: {', '.join(missing)}")

        try:
            weight = float(record["weight"])
            popularity = float(record["popularityScore"])
        except (TypeError, ValueError) as e:
            raise CatalogError(f"Catalog record {record['id']!r} has non-numeric weight or popularityScore") from e

        if not math.isfinite(weight) or weight <= 0:
            raise CatalogError(f"Catalog record {record['id']!r} must have a positive weight, got {weight}")
        if not 0 <= popularity <= 1:
            raise CatalogError(
                f"Catalog record {record['id']!r} popularityScore must be within [0, 1], got {popularity}"
            )

        images = record.get("images") or {}
        if not isinstance(images, dict):
            raise CatalogError(f"Catalog record {record['id']!r} images must be a mapping of variant to URL")

        return cls(
            id=record["id"],
            name=str(record["name"]),
            weight=weight,
            popularity_score=popularity,
            images=MappingProxyType(dict(images)),
            record=MappingProxyType(dict(record)),
        )


class Catalog(Sequence):
    """Immutable, ordered collection of catalog entries."""

    def __init__(self, entries: Sequence[CatalogEntry]):
        self._entries = tuple(entries)

    def __getitem__(self, index):
        return self._entries[index]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries)

    @classmethod
    def from_records(cls, records: List[Dict[str, Any]]) -> "Catalog":
        if not isinstance(records, list):
            raise CatalogError("Catalog must be a JSON array of product records")
        return cls([CatalogEntry.from_record(record) for record in records])


def load_catalog(path: Union[str, Path]) -> Catalog:
    """Load and validate the catalog JSON file."""
    catalog_path = Path(path)
    if not catalog_path.exists():
        raise CatalogError(f"Catalog file not found: {catalog_path}")

    try:
        records = json.loads(catalog_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise CatalogError(f"Catalog file {catalog_path} is not valid JSON: {e}") from e

    catalog = Catalog.from_records(records)
    logger.info(f"Loaded {len(catalog)} catalog entries from {catalog_path}")
    return catalog
