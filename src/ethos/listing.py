"""
Collection walking for Ethos listing endpoints.

Listing endpoints answer in different envelopes depending on the API
generation and tenant:

- plain JSON array
- API Platform / Hydra: {"hydra:member": [...]}
- JSON-LD compact: {"member": [...]}
- v1 gateway style: a single flat field such as {"users": [...]}

ENVELOPE_ADAPTERS is the closed list of recognized shapes; the first adapter
whose shape matches wins. Unknown shapes yield no records.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from loguru import logger

from .client import EthosApiError, EthosClient, Params

FLAT_COLLECTION_FIELDS = (
    "attributes",
    "learningGroups",
    "users",
    "userAttributes",
    "learningGroupAttributes",
    "results",
    "items",
)


def _plain_array(data: Any) -> list | None:
    return data if isinstance(data, list) else None


def _hydra_member(data: Any) -> list | None:
    if isinstance(data, dict) and isinstance(data.get("hydra:member"), list):
        return data["hydra:member"]
    return None


def _member(data: Any) -> list | None:
    if isinstance(data, dict) and isinstance(data.get("member"), list):
        return data["member"]
    return None


def _flat_field(data: Any) -> list | None:
    if not isinstance(data, dict):
        return None
    for key in FLAT_COLLECTION_FIELDS:
        if isinstance(data.get(key), list):
            return data[key]
    return None


ENVELOPE_ADAPTERS: tuple[tuple[str, Callable[[Any], list | None]], ...] = (
    ("plain_array", _plain_array),
    ("hydra_member", _hydra_member),
    ("member", _member),
    ("flat_field", _flat_field),
)


def detect_envelope(data: Any) -> str | None:
    """Name of the adapter that recognizes data, or None."""
    for name, adapter in ENVELOPE_ADAPTERS:
        if adapter(data) is not None:
            return name
    return None


def collection_members(data: Any) -> list[Any]:
    """Normalize any known envelope into a list of records."""
    if not data:
        return []
    for _, adapter in ENVELOPE_ADAPTERS:
        members = adapter(data)
        if members is not None:
            return members
    return []


def _as_pairs(params: Params) -> list[tuple[str, Any]]:
    if not params:
        return []
    if isinstance(params, dict):
        return list(params.items())
    return list(params)


class CollectionWalker:
    """
    Pages through a listing endpoint.

    Stops at the first empty page or after max_pages; never relies on a
    total-count field. No retries at this layer.
    """

    def __init__(self, client: EthosClient):
        self.client = client

    async def list(
        self,
        endpoint: str,
        params: Params = None,
        page: int | None = None,
        page_size: int | None = None,
        timeout: float | None = None,
    ) -> list[Any]:
        """
        Fetch one page of records.

        Raises:
            EthosApiError: On transport failure or non-2xx response
        """
        pairs = _as_pairs(params)
        if page_size is not None:
            pairs = [p for p in pairs if p[0] != "itemsPerPage"] + [("itemsPerPage", str(page_size))]
        if page is not None:
            pairs = [p for p in pairs if p[0] != "page"] + [("page", str(page))]

        data = await self.client.get(endpoint, params=pairs or None, timeout=timeout)
        return collection_members(data)

    async def walk(
        self,
        endpoint: str,
        params: Params = None,
        page_size: int = 200,
        max_pages: int = 10,
        timeout: float | None = None,
    ) -> list[Any]:
        """
        Fetch up to max_pages pages and concatenate them.

        A failing page ends the walk; records gathered so far are kept.
        """
        records: list[Any] = []
        for page in range(1, max_pages + 1):
            try:
                batch = await self.list(endpoint, params, page=page, page_size=page_size, timeout=timeout)
            except EthosApiError as e:
                logger.warning(f"Walking {endpoint} stopped at page {page}: {e}")
                break
            if not batch:
                break
            records.extend(batch)
            logger.debug(f"Fetched page {page} of {endpoint}: {len(batch)} records")
        return records
