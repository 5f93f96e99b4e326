"""
affinity_injector/lookup/store.py
──────────────────────────────────
Read-only object lookup contract used by the control plane.

Contract
─────────
Every accessor returns the typed object, or None when the object does not
exist. Absence is NOT an error at this layer: the caller decides whether a
missing object is fatal (a missing claim is, a missing locality policy is
not).

Any failure to *answer* the question (API unreachable, 5xx, malformed
payload) raises ObjectStoreError. The control plane never retries it.

Two implementations ship with the package:
  InMemoryObjectStore — dict-backed, seeded with typed models or raw
                        kubernetes objects. Tests and dry runs.
  KubeObjectStore     — backed by the kubernetes API (lookup/kube_store.py).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple, Union

from kubernetes.client import models as k8s

from affinity_injector.lookup.translate import (
    claim_from_k8s,
    daemonset_from_k8s,
    dataset_from_custom_object,
    policy_from_config_map,
    volume_from_k8s,
)
from affinity_injector.shared.config import InjectorSettings, get_settings
from affinity_injector.shared.models import (
    CachingDaemonSet,
    Dataset,
    RuntimeKind,
    RuntimeRecord,
    StorageClaim,
    StorageVolume,
    TieredLocalityPolicy,
)


class ObjectStoreError(Exception):
    """
    Raised when a lookup could not be answered.

    Attributes:
        reason: Human-readable explanation, including the object looked up.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ObjectStore(ABC):
    """Typed read accessors over the cluster's objects. No mutation."""

    @abstractmethod
    def get_dataset(self, namespace: str, name: str) -> Optional[Dataset]:
        ...

    @abstractmethod
    def get_runtime(
        self, namespace: str, name: str, kind: RuntimeKind
    ) -> Optional[RuntimeRecord]:
        ...

    @abstractmethod
    def get_claim(self, namespace: str, name: str) -> Optional[StorageClaim]:
        ...

    @abstractmethod
    def get_volume(self, name: str) -> Optional[StorageVolume]:
        ...

    @abstractmethod
    def get_daemonset(self, namespace: str, name: str) -> Optional[CachingDaemonSet]:
        ...

    @abstractmethod
    def get_tiered_locality_policy(self) -> Optional[TieredLocalityPolicy]:
        ...


class InMemoryObjectStore(ObjectStore):
    """
    Dict-backed ObjectStore.

    The add_* methods accept either the typed model or the raw kubernetes
    object (V1PersistentVolumeClaim, V1PersistentVolume, V1DaemonSet,
    V1ConfigMap, Dataset dict). Raw objects go through the same translation
    functions KubeObjectStore uses, so a test seeded with V1 objects
    exercises the real boundary.
    """

    def __init__(self, settings: Optional[InjectorSettings] = None) -> None:
        self._settings = settings or get_settings()
        self._datasets: Dict[Tuple[str, str], Dataset] = {}
        self._runtimes: Dict[Tuple[str, str, RuntimeKind], RuntimeRecord] = {}
        self._claims: Dict[Tuple[str, str], StorageClaim] = {}
        self._volumes: Dict[str, StorageVolume] = {}
        self._daemonsets: Dict[Tuple[str, str], CachingDaemonSet] = {}
        self._policy: Optional[TieredLocalityPolicy] = None

    # ── Seeding ───────────────────────────────────────────────────────────────

    def add_dataset(self, dataset: Union[Dataset, Dict[str, Any]]) -> Dataset:
        if isinstance(dataset, dict):
            dataset = dataset_from_custom_object(dataset)
        self._datasets[(dataset.namespace, dataset.name)] = dataset
        return dataset

    def add_runtime(self, runtime: RuntimeRecord) -> RuntimeRecord:
        self._runtimes[(runtime.namespace, runtime.name, runtime.kind)] = runtime
        return runtime

    def add_claim(
        self, claim: Union[StorageClaim, k8s.V1PersistentVolumeClaim]
    ) -> StorageClaim:
        if isinstance(claim, k8s.V1PersistentVolumeClaim):
            claim = claim_from_k8s(claim)
        self._claims[(claim.namespace, claim.name)] = claim
        return claim

    def add_volume(
        self, volume: Union[StorageVolume, k8s.V1PersistentVolume]
    ) -> StorageVolume:
        if isinstance(volume, k8s.V1PersistentVolume):
            volume = volume_from_k8s(volume)
        self._volumes[volume.name] = volume
        return volume

    def add_daemonset(
        self, daemonset: Union[CachingDaemonSet, k8s.V1DaemonSet]
    ) -> CachingDaemonSet:
        if isinstance(daemonset, k8s.V1DaemonSet):
            daemonset = daemonset_from_k8s(daemonset)
        self._daemonsets[(daemonset.namespace, daemonset.name)] = daemonset
        return daemonset

    def set_tiered_locality_policy(
        self, policy: Union[TieredLocalityPolicy, k8s.V1ConfigMap, None]
    ) -> Optional[TieredLocalityPolicy]:
        if isinstance(policy, k8s.V1ConfigMap):
            policy = policy_from_config_map(
                policy, self._settings.tiered_locality_data_key
            )
        self._policy = policy
        return policy

    # ── ObjectStore ───────────────────────────────────────────────────────────

    def get_dataset(self, namespace: str, name: str) -> Optional[Dataset]:
        return self._datasets.get((namespace, name))

    def get_runtime(
        self, namespace: str, name: str, kind: RuntimeKind
    ) -> Optional[RuntimeRecord]:
        return self._runtimes.get((namespace, name, kind))

    def get_claim(self, namespace: str, name: str) -> Optional[StorageClaim]:
        return self._claims.get((namespace, name))

    def get_volume(self, name: str) -> Optional[StorageVolume]:
        return self._volumes.get(name)

    def get_daemonset(self, namespace: str, name: str) -> Optional[CachingDaemonSet]:
        return self._daemonsets.get((namespace, name))

    def get_tiered_locality_policy(self) -> Optional[TieredLocalityPolicy]:
        return self._policy
