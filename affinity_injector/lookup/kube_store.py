"""
affinity_injector/lookup/kube_store.py
───────────────────────────────────────
ObjectStore backed by the Kubernetes API.

Each accessor issues one synchronous GET and translates the answer with
lookup/translate.py:

  get_claim      → CoreV1Api.read_namespaced_persistent_volume_claim
  get_volume     → CoreV1Api.read_persistent_volume
  get_daemonset  → AppsV1Api.read_namespaced_daemon_set
  get_dataset    → CustomObjectsApi (data.fluid.io/v1alpha1, datasets)
  get_runtime    → CustomObjectsApi (<kind>runtimes)
  get_tiered_locality_policy → ConfigMap in the fluid system namespace

A 404 means "absent" and returns None. Every other ApiException, and any
object whose payload the models reject (an unparseable locality ConfigMap,
a custom resource with a field of the wrong type), raises ObjectStoreError.
Nothing is cached between calls: the store is eventually consistent and
each admission decision reads fresh state.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from pydantic import ValidationError

from affinity_injector.lookup.store import ObjectStore, ObjectStoreError
from affinity_injector.lookup.translate import (
    PolicyFormatError,
    claim_from_k8s,
    daemonset_from_k8s,
    dataset_from_custom_object,
    policy_from_config_map,
    runtime_from_custom_object,
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

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DATASET_PLURAL = "datasets"


class KubeObjectStore(ObjectStore):
    """ObjectStore over live cluster state."""

    def __init__(
        self,
        core_api: Optional[k8s_client.CoreV1Api] = None,
        apps_api: Optional[k8s_client.AppsV1Api] = None,
        custom_api: Optional[k8s_client.CustomObjectsApi] = None,
        settings: Optional[InjectorSettings] = None,
    ) -> None:
        self._core = core_api or k8s_client.CoreV1Api()
        self._apps = apps_api or k8s_client.AppsV1Api()
        self._custom = custom_api or k8s_client.CustomObjectsApi()
        self._settings = settings or get_settings()

    @classmethod
    def from_environment(
        cls, settings: Optional[InjectorSettings] = None
    ) -> "KubeObjectStore":
        """In-cluster service account first, local kubeconfig otherwise."""
        try:
            k8s_config.load_incluster_config()
        except ConfigException:
            k8s_config.load_kube_config()
        return cls(settings=settings)

    # ── Core objects ──────────────────────────────────────────────────────────

    def get_claim(self, namespace: str, name: str) -> Optional[StorageClaim]:
        pvc = self._read(
            f"claim {namespace}/{name}",
            lambda: self._core.read_namespaced_persistent_volume_claim(
                name=name, namespace=namespace
            ),
        )
        return self._translate(f"claim {namespace}/{name}", claim_from_k8s, pvc)

    def get_volume(self, name: str) -> Optional[StorageVolume]:
        pv = self._read(
            f"volume {name}",
            lambda: self._core.read_persistent_volume(name=name),
        )
        return self._translate(f"volume {name}", volume_from_k8s, pv)

    def get_daemonset(self, namespace: str, name: str) -> Optional[CachingDaemonSet]:
        ds = self._read(
            f"daemonset {namespace}/{name}",
            lambda: self._apps.read_namespaced_daemon_set(name=name, namespace=namespace),
        )
        return self._translate(f"daemonset {namespace}/{name}", daemonset_from_k8s, ds)

    # ── Custom resources ──────────────────────────────────────────────────────

    def get_dataset(self, namespace: str, name: str) -> Optional[Dataset]:
        obj = self._read(
            f"dataset {namespace}/{name}",
            lambda: self._custom.get_namespaced_custom_object(
                group=self._settings.crd_group,
                version=self._settings.crd_version,
                namespace=namespace,
                plural=DATASET_PLURAL,
                name=name,
            ),
        )
        return self._translate(f"dataset {namespace}/{name}", dataset_from_custom_object, obj)

    def get_runtime(
        self, namespace: str, name: str, kind: RuntimeKind
    ) -> Optional[RuntimeRecord]:
        obj = self._read(
            f"{kind.resource_kind} {namespace}/{name}",
            lambda: self._custom.get_namespaced_custom_object(
                group=self._settings.crd_group,
                version=self._settings.crd_version,
                namespace=namespace,
                plural=kind.resource_plural,
                name=name,
            ),
        )
        return self._translate(
            f"{kind.resource_kind} {namespace}/{name}",
            lambda o: runtime_from_custom_object(o, kind),
            obj,
        )

    # ── Cluster config ────────────────────────────────────────────────────────

    def get_tiered_locality_policy(self) -> Optional[TieredLocalityPolicy]:
        namespace = self._settings.fluid_namespace
        name = self._settings.tiered_locality_config_map
        config_map = self._read(
            f"configmap {namespace}/{name}",
            lambda: self._core.read_namespaced_config_map(name=name, namespace=namespace),
        )
        if config_map is None:
            logger.debug("No tiered locality ConfigMap %s/%s", namespace, name)
            return None
        return self._translate(
            f"configmap {namespace}/{name}",
            lambda cm: policy_from_config_map(cm, self._settings.tiered_locality_data_key),
            config_map,
        )

    # ── Helpers ───────────────────────────────────────────────────────────────

    @staticmethod
    def _read(what: str, call: Callable[[], T]) -> Optional[T]:
        try:
            return call()
        except ApiException as e:
            if e.status == 404:
                return None
            logger.debug("Lookup of %s failed: %s %s", what, e.status, e.reason)
            raise ObjectStoreError(
                f"lookup of {what} failed: {e.status} {e.reason}"
            ) from e

    @staticmethod
    def _translate(what: str, convert: Callable[[T], R], obj: Optional[T]) -> Optional[R]:
        """Absent stays None; a payload the models reject is a failed lookup."""
        if obj is None:
            return None
        try:
            return convert(obj)
        except (ValidationError, PolicyFormatError) as exc:
            logger.debug("Could not translate %s: %s", what, exc)
            raise ObjectStoreError(f"{what}: {exc}") from exc
