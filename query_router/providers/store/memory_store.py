"""In-process record store.

Holds records in a list and evaluates filters in Python.  Suitable for
development, tests, and small fixed datasets loaded from a JSON file.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, TypeAdapter

from query_router.config.models import StoreConfig
from query_router.core.http_client_pool import HttpClientPool
from query_router.models.domain import ExtractedFilters, Record, SortSpec
from query_router.providers.base import BaseRecordStore
from query_router.providers.factory import register_provider

logger = logging.getLogger(__name__)

_RECORDS = TypeAdapter(list[Record])


def load_records(path: str | Path) -> list[Record]:
    """Load a JSON array of records (camelCase or snake_case keys)."""
    records_path = Path(path)
    if not records_path.exists():
        raise FileNotFoundError(f"Records file not found: {records_path}")
    return _RECORDS.validate_json(records_path.read_bytes())


def matches_filters(record: Record, filters: ExtractedFilters) -> bool:
    """True when *record* satisfies every populated filter field."""
    if filters.year is not None and record.year != filters.year:
        return False
    if filters.category is not None and record.category != filters.category:
        return False
    if filters.severity_levels and record.severity not in filters.severity_levels:
        return False
    if filters.status_levels and record.status not in filters.status_levels:
        return False
    if filters.department:
        if not record.department:
            return False
        if filters.department.lower() not in record.department.lower():
            return False
    if filters.date_range and not filters.date_range.contains(record.identified_on):
        return False
    if filters.keywords:
        text = record.searchable_text()
        if not all(keyword.lower() in text for keyword in filters.keywords):
            return False
    return True


def sort_records(records: list[Record], sort: SortSpec) -> list[Record]:
    """Stable sort on one field; records missing the field go last."""
    present = [r for r in records if getattr(r, sort.field, None) is not None]
    missing = [r for r in records if getattr(r, sort.field, None) is None]
    present.sort(key=lambda r: getattr(r, sort.field), reverse=sort.descending)
    return present + missing


@register_provider("store", "memory")
class InMemoryRecordStore(BaseRecordStore):
    """List-backed record store."""

    def __init__(
        self,
        config: StoreConfig | None = None,
        router_config: BaseModel | None = None,
        http_pool: HttpClientPool | None = None,
        *,
        records: Iterable[Record] | None = None,
    ) -> None:
        self.config = config or StoreConfig()
        if records is not None:
            self._records = list(records)
        elif self.config.path:
            self._records = load_records(self.config.path)
            logger.info(
                f"Loaded {len(self._records)} records from {self.config.path}"
            )
        else:
            self._records = []

    def __len__(self) -> int:
        return len(self._records)

    def add(self, record: Record) -> None:
        self._records.append(record)

    async def query(
        self,
        filters: ExtractedFilters,
        sort: SortSpec | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        matches = [r for r in self._records if matches_filters(r, filters)]
        ordered = sort_records(matches, sort or SortSpec())
        return ordered[:limit] if limit is not None else ordered

    async def get_by_id(self, record_id: str) -> Record | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None
