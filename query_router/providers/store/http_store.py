"""REST record store backed by a pooled ``httpx.AsyncClient``.

Wire protocol::

    POST {baseUrl}/records/query   {"filters": {...}, "sort": {...}, "limit": n}
        -> {"records": [...]}  or  [...]
    GET  {baseUrl}/records/{id}    -> record, 404 when missing
"""

from __future__ import annotations

from urllib.parse import quote

import httpx
import pydantic
from pydantic import BaseModel, TypeAdapter

from query_router.config.models import StoreConfig
from query_router.core.http_client_pool import HttpClientPool
from query_router.models.domain import ExtractedFilters, Record, SortSpec
from query_router.providers.base import BaseRecordStore
from query_router.providers.factory import register_provider
from query_router.services.exceptions import StoreTimeoutError, StoreUnavailableError

_RECORDS = TypeAdapter(list[Record])


@register_provider("store", "http")
class HttpRecordStore(BaseRecordStore):
    """Record store reached over HTTP."""

    def __init__(
        self,
        config: StoreConfig,
        router_config: BaseModel | None,
        http_pool: HttpClientPool,
    ) -> None:
        if not config.base_url:
            raise ValueError("HTTP record store requires storeConfig.baseUrl")
        self.config = config
        headers = {"Authorization": f"Bearer {config.api_key}"} if config.api_key else None
        self.http_client = http_pool.get(
            "store",
            base_url=config.base_url,
            headers=headers,
            timeout=config.timeout,
        )

    async def query(
        self,
        filters: ExtractedFilters,
        sort: SortSpec | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        payload = {
            "filters": filters.model_dump(mode="json", by_alias=True, exclude_none=True),
            "sort": sort.model_dump() if sort else None,
            "limit": limit,
        }
        response = await self._request("POST", "/records/query", json=payload)
        body = response.json()
        items = body.get("records", []) if isinstance(body, dict) else body
        try:
            return _RECORDS.validate_python(items)
        except pydantic.ValidationError as e:
            raise StoreUnavailableError(f"malformed query response: {e}") from e

    async def get_by_id(self, record_id: str) -> Record | None:
        response = await self._request(
            "GET", f"/records/{quote(record_id, safe='')}", allow_missing=True
        )
        if response is None:
            return None
        try:
            return Record.model_validate(response.json())
        except pydantic.ValidationError as e:
            raise StoreUnavailableError(f"malformed record {record_id}: {e}") from e

    async def _request(
        self, method: str, url: str, *, allow_missing: bool = False, **kwargs
    ) -> httpx.Response | None:
        try:
            response = await self.http_client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise StoreTimeoutError(self.config.timeout) from e
        except httpx.TransportError as e:
            raise StoreUnavailableError(str(e)) from e

        if response.status_code == 404 and allow_missing:
            return None
        if response.is_error:
            raise StoreUnavailableError(f"HTTP {response.status_code} from {url}")
        return response
