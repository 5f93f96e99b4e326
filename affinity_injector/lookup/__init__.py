"""
affinity_injector/lookup — read-only access to cluster objects.

Public API:
    ObjectStore          — abstract typed lookup contract (None = absent)
    ObjectStoreError     — raised when a lookup cannot be answered
    InMemoryObjectStore  — dict-backed store, seeded with models or V1 objects
    KubeObjectStore      — store backed by the kubernetes API
"""

from affinity_injector.lookup.store import (
    InMemoryObjectStore,
    ObjectStore,
    ObjectStoreError,
)
from affinity_injector.lookup.kube_store import KubeObjectStore

__all__ = [
    "ObjectStore",
    "ObjectStoreError",
    "InMemoryObjectStore",
    "KubeObjectStore",
]
