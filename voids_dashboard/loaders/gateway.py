"""
Document store gateways.

The dashboards only ever need one-shot reads of a whole collection, so a
gateway exposes a single operation, ``fetch_all(collection, limit=None)``.
Callers construct the gateway (and any client it wraps) and pass it in;
nothing here holds a module-level connection.
"""

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from ..config import FIRESTORE_PROJECT, SNAPSHOT_FILE
from ..simulator import generate_snapshot

logger = logging.getLogger(__name__)


class DocumentStoreGateway(Protocol):
    def fetch_all(self, collection: str, limit: int | None = None) -> list[dict[str, Any]]:
        ...


class FirestoreGateway:
    """Gateway over an injected Firestore client.

    The client only needs the read surface of ``google.cloud.firestore.Client``:
    ``collection(name)`` returning a query with ``limit(n)`` and ``stream()``,
    whose documents expose ``id`` and ``to_dict()``.
    """

    def __init__(self, client: Any):
        self._client = client

    def fetch_all(self, collection: str, limit: int | None = None) -> list[dict[str, Any]]:
        query = self._client.collection(collection)
        if limit is not None:
            query = query.limit(limit)
        records = []
        for doc in query.stream():
            data = doc.to_dict() or {}
            records.append({"id": doc.id, **data})
        logger.info("Fetched %d documents from '%s'", len(records), collection)
        return records


class InMemoryGateway:
    """Gateway over collections already held in memory (demo runs, tests)."""

    def __init__(self, collections: dict[str, list[dict[str, Any]]] | None = None):
        self._collections = {name: list(docs) for name, docs in (collections or {}).items()}

    def fetch_all(self, collection: str, limit: int | None = None) -> list[dict[str, Any]]:
        docs = self._collections.get(collection, [])
        if limit is not None:
            docs = docs[:limit]
        return [dict(doc) for doc in docs]


class JsonSnapshotGateway:
    """Gateway over a JSON export shaped ``{collection: [documents]}``."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def fetch_all(self, collection: str, limit: int | None = None) -> list[dict[str, Any]]:
        with self.path.open(encoding="utf-8") as fh:
            snapshot = json.load(fh)
        docs = snapshot.get(collection, [])
        if not isinstance(docs, list):
            logger.warning("Collection '%s' in %s is not a list", collection, self.path)
            return []
        if limit is not None:
            docs = docs[:limit]
        logger.info("Read %d documents for '%s' from %s", len(docs), collection, self.path)
        return [doc for doc in docs if isinstance(doc, dict)]


def build_firestore_gateway(project: str) -> FirestoreGateway:
    """Construct a FirestoreGateway with a real client for project."""
    from google.cloud import firestore

    return FirestoreGateway(firestore.Client(project=project))


def build_default_gateway(
    snapshot_file: str = SNAPSHOT_FILE,
    firestore_project: str = FIRESTORE_PROJECT,
) -> DocumentStoreGateway:
    """Pick the gateway the entry points read from.

    A JSON snapshot wins over Firestore; with neither configured the
    dashboards run on simulated documents.
    """
    if snapshot_file:
        logger.info("Reading documents from snapshot %s", snapshot_file)
        return JsonSnapshotGateway(snapshot_file)
    if firestore_project:
        logger.info("Reading documents from Firestore project '%s'", firestore_project)
        return build_firestore_gateway(firestore_project)
    logger.info("No document store configured; using simulated documents")
    return InMemoryGateway(generate_snapshot())
