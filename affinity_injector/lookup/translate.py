"""
affinity_injector/lookup/translate.py
──────────────────────────────────────
The typed accessor boundary.

Kubernetes gives us label maps, CSI attribute maps and untyped custom
resource dicts. Each function here turns one such object into the typed
model the control plane works with. No other module reads raw labels or
attributes of cluster objects.

  V1PersistentVolumeClaim → StorageClaim
  V1PersistentVolume      → StorageVolume
  V1DaemonSet             → CachingDaemonSet
  Dataset custom object   → Dataset
  Runtime custom object   → RuntimeRecord
  V1ConfigMap / YAML      → TieredLocalityPolicy
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import yaml
from kubernetes.client import models as k8s
from pydantic import ValidationError

from affinity_injector.shared.labels import (
    DATASET_REFERRING_NAME_LABEL,
    DATASET_REFERRING_NAMESPACE_LABEL,
    VOLUME_ATTR_FLUID_PATH,
    VOLUME_ATTR_MOUNT_TYPE,
    is_true,
    storage_capacity_label,
)
from affinity_injector.shared.models import (
    CachingDaemonSet,
    Dataset,
    DatasetMount,
    DatasetPhase,
    DatasetRef,
    FuseContainer,
    RuntimeKind,
    RuntimeRecord,
    RuntimeRef,
    StorageClaim,
    StorageVolume,
    TieredLocalityPolicy,
)

logger = logging.getLogger(__name__)


class PolicyFormatError(ValueError):
    """The tiered-locality payload exists but cannot be parsed."""


# ── Core objects ──────────────────────────────────────────────────────────────

def claim_from_k8s(pvc: k8s.V1PersistentVolumeClaim) -> StorageClaim:
    """
    A claim is a dataset claim when it carries `fluid.io/s-<ns>-<name>=true`,
    or when it was cut for a reference dataset (both referring labels set).
    """
    metadata = pvc.metadata
    labels = metadata.labels or {}
    namespace = metadata.namespace or ""

    referring: Optional[DatasetRef] = None
    ref_name = labels.get(DATASET_REFERRING_NAME_LABEL)
    ref_namespace = labels.get(DATASET_REFERRING_NAMESPACE_LABEL)
    if ref_name and ref_namespace:
        referring = DatasetRef(namespace=ref_namespace, name=ref_name)

    return StorageClaim(
        name=metadata.name,
        namespace=namespace,
        volume_name=(pvc.spec.volume_name if pvc.spec else None) or None,
        is_dataset_claim=(
            is_true(labels, storage_capacity_label(namespace, metadata.name))
            or referring is not None
        ),
        referring_dataset=referring,
    )


def volume_from_k8s(pv: k8s.V1PersistentVolume) -> StorageVolume:
    csi = pv.spec.csi if pv.spec else None
    if csi is None:
        return StorageVolume(name=pv.metadata.name)
    attributes = csi.volume_attributes or {}
    return StorageVolume(
        name=pv.metadata.name,
        driver=csi.driver,
        fluid_path=attributes.get(VOLUME_ATTR_FLUID_PATH) or None,
        mount_type=attributes.get(VOLUME_ATTR_MOUNT_TYPE) or None,
    )


def daemonset_from_k8s(ds: k8s.V1DaemonSet) -> CachingDaemonSet:
    containers: List[FuseContainer] = []
    template = ds.spec.template if ds.spec else None
    pod_spec = template.spec if template else None
    for container in (pod_spec.containers if pod_spec else None) or []:
        security = container.security_context
        containers.append(
            FuseContainer(
                name=container.name,
                image=container.image or "",
                privileged=bool(security and security.privileged),
                mount_paths=[m.mount_path for m in container.volume_mounts or []],
            )
        )
    return CachingDaemonSet(
        name=ds.metadata.name,
        namespace=ds.metadata.namespace or "",
        containers=containers,
    )


# ── Custom resources ──────────────────────────────────────────────────────────

def dataset_from_custom_object(obj: Dict[str, Any]) -> Dataset:
    """
    Translate a data.fluid.io Dataset dict.

    Runtime entries with a type outside RuntimeKind are dropped with a
    warning; a dataset left with no known runtime is then simply unbound
    as far as the injector is concerned.
    """
    metadata = obj.get("metadata") or {}
    spec = obj.get("spec") or {}
    status = obj.get("status") or {}

    mounts = [
        DatasetMount(mount_point=m.get("mountPoint") or "", name=m.get("name") or "")
        for m in spec.get("mounts") or []
    ]

    runtimes: List[RuntimeRef] = []
    for entry in status.get("runtimes") or []:
        runtime_type = entry.get("type") or ""
        try:
            kind = RuntimeKind(runtime_type)
        except ValueError:
            logger.warning(
                "dataset %s/%s lists unknown runtime type %r, ignored",
                metadata.get("namespace"), metadata.get("name"), runtime_type,
            )
            continue
        runtimes.append(
            RuntimeRef(
                kind=kind,
                name=entry.get("name") or "",
                namespace=entry.get("namespace") or "",
            )
        )

    phase_value = status.get("phase") or ""
    try:
        phase = DatasetPhase(phase_value)
    except ValueError:
        logger.warning(
            "dataset %s/%s has unknown phase %r, treated as not bound",
            metadata.get("namespace"), metadata.get("name"), phase_value,
        )
        phase = DatasetPhase.NONE

    return Dataset(
        name=metadata.get("name") or "",
        namespace=metadata.get("namespace") or "",
        phase=phase,
        mounts=mounts,
        runtimes=runtimes,
    )


def runtime_from_custom_object(obj: Dict[str, Any], kind: RuntimeKind) -> RuntimeRecord:
    metadata = obj.get("metadata") or {}
    return RuntimeRecord(
        kind=kind,
        name=metadata.get("name") or "",
        namespace=metadata.get("namespace") or "",
    )


# ── Tiered locality policy ────────────────────────────────────────────────────

def policy_from_yaml(text: str) -> TieredLocalityPolicy:
    """
    Parse the tiered-locality YAML payload.

    Raises:
        PolicyFormatError: the payload is not a mapping or fails validation.
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise PolicyFormatError(f"tiered locality is not valid YAML: {exc}") from exc
    if raw is None:
        return TieredLocalityPolicy()
    if not isinstance(raw, dict):
        raise PolicyFormatError(
            f"tiered locality must be a mapping, got {type(raw).__name__}"
        )
    try:
        return TieredLocalityPolicy(
            preferred=raw.get("preferred") or [],
            required=raw.get("required") or [],
        )
    except ValidationError as exc:
        raise PolicyFormatError(f"invalid tiered locality: {exc}") from exc


def policy_from_config_map(
    config_map: k8s.V1ConfigMap,
    data_key: str,
) -> Optional[TieredLocalityPolicy]:
    """None when the ConfigMap has no entry under `data_key`."""
    text = (config_map.data or {}).get(data_key)
    if text is None:
        logger.warning(
            "ConfigMap %s/%s has no %r entry, no locality policy applied",
            config_map.metadata.namespace, config_map.metadata.name, data_key,
        )
        return None
    return policy_from_yaml(text)
