"""
In-memory record cache.

A RecordCache holds one immutable snapshot of a collection. It is filled on
load or on an explicit refresh; a failed fetch leaves the previous snapshot
in place. Normalized entities are derived lazily, once per snapshot.
"""

import logging
from typing import Any, Callable, Iterable, Mapping

from .gateway import DocumentStoreGateway

logger = logging.getLogger(__name__)


class RecordCache:
    def __init__(
        self,
        gateway: DocumentStoreGateway,
        collection: str,
        limit: int | None = None,
    ):
        self.gateway = gateway
        self.collection = collection
        self.limit = limit
        self._records: tuple[Mapping[str, Any], ...] = ()
        self._normalized: dict[Callable, tuple] = {}
        self.loaded = False

    @property
    def records(self) -> tuple[Mapping[str, Any], ...]:
        return self._records

    def refresh(self) -> bool:
        """Fetch the collection again, replacing the snapshot on success.

        There is no retry and no cancellation: whichever refresh completes
        last owns the cache.
        """
        try:
            fetched = self.gateway.fetch_all(self.collection, self.limit)
        except Exception as exc:
            logger.warning("Could not fetch '%s': %s", self.collection, exc)
            return False
        self._replace(fetched)
        return True

    def ensure_loaded(self) -> tuple[Mapping[str, Any], ...]:
        if not self.loaded:
            self.refresh()
        return self._records

    def normalized(self, normalizer: Callable[[Iterable[Mapping]], list]) -> tuple:
        """Entities derived from the current snapshot by normalizer, cached."""
        if normalizer not in self._normalized:
            self._normalized[normalizer] = tuple(normalizer(self._records))
        return self._normalized[normalizer]

    def _replace(self, records: Iterable[Mapping[str, Any]]) -> None:
        self._records = tuple(records)
        self._normalized = {}
        self.loaded = True
        logger.info("Cached %d records for '%s'", len(self._records), self.collection)
