"""Document store access and ingestion helpers for the voids dashboards."""

from .cache import RecordCache
from .gateway import DocumentStoreGateway, FirestoreGateway, InMemoryGateway
from .gateway import JsonSnapshotGateway, build_default_gateway, build_firestore_gateway

__all__ = [
    "RecordCache",
    "DocumentStoreGateway",
    "FirestoreGateway",
    "InMemoryGateway",
    "JsonSnapshotGateway",
    "build_default_gateway",
    "build_firestore_gateway",
]
