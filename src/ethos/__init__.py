"""
Ethos API access.

Components:
- client: authenticated httpx wrapper and EthosApiError
- references: canonical ids from ids, IRIs and embedded objects
- listing: envelope adapters and the collection walker
- records: tenant field-name normalization
- lms: typed enrollment, card and invitation endpoints
"""

from .client import EthosApiError, EthosClient
from .lms import EthosLmsApi
from .listing import CollectionWalker, collection_members
from .references import extract_id, extract_uuid

__all__ = [
    "EthosApiError",
    "EthosClient",
    "EthosLmsApi",
    "CollectionWalker",
    "collection_members",
    "extract_id",
    "extract_uuid",
]
