"""
affinity_injector/control_plane/locality_correlator.py
───────────────────────────────────────────────────────
Cache Locality Correlator: confirm the cache behind a claim actually exists.

Given the claim the workload mounts and the effective dataset the resolver
produced, the correlator answers two questions:

  1. Is the volume the workload will mount really served by this runtime?
     The claim's bound volume must carry the CSI attributes
     fluid_path (serving path) and mount_type (runtime kind), and
     mount_type must equal the resolved runtime kind.

  2. Is the runtime actually deployed?
     Its fuse DaemonSet `<dataset>-<component>-fuse` must exist in the
     physical dataset's namespace.

Cross-namespace mounts
───────────────────────
When the claim lives in another namespace than the physical dataset, the
workload went through a reference dataset and mounts a reference volume.
A reference volume shares the physical volume's serving path and mount
type. We check that invariant against the physical dataset's own claim
and volume, so a stale or hand-edited reference volume is rejected here
rather than surfacing as an empty mount inside the container.

The DaemonSet's pod template is not inspected: its existence is the only
signal the injector needs.
"""

from __future__ import annotations

import logging

from affinity_injector.control_plane.errors import (
    AttributeMismatchError,
    NotBoundError,
    NotFoundError,
    ServingComponentNotFoundError,
    UnresolvedReferenceError,
)
from affinity_injector.lookup.store import ObjectStore
from affinity_injector.shared.models import (
    CachingDaemonSet,
    Correlation,
    Dataset,
    RuntimeKind,
    StorageClaim,
    StorageVolume,
)

logger = logging.getLogger(__name__)


class CacheLocalityCorrelator:
    """Correlates a claim with its volume and its runtime's caching DaemonSet."""

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    def correlate(
        self,
        claim: StorageClaim,
        dataset: Dataset,
        runtime_kind: RuntimeKind,
    ) -> Correlation:
        """
        Args:
            claim:        The claim mounted by the workload.
            dataset:      The effective (physical) dataset from the resolver.
            runtime_kind: The physical dataset's runtime kind.

        Returns:
            Correlation with the mounted volume, its serving path and the
            caching DaemonSet.

        Raises:
            NotBoundError, NotFoundError, AttributeMismatchError,
            UnresolvedReferenceError, ServingComponentNotFoundError.
        """
        self._check_referring_labels(claim, dataset)

        volume = self._bound_volume(claim)
        self._check_attributes(volume, runtime_kind)

        if claim.namespace != dataset.namespace:
            self._check_shared_mount(claim, volume, dataset)

        daemonset = self._fuse_daemonset(dataset, runtime_kind)

        logger.debug(
            "claim %s served from %s by daemonset %s/%s",
            claim, volume.fluid_path, daemonset.namespace, daemonset.name,
        )
        return Correlation(
            volume=volume,
            serving_path=volume.fluid_path,
            daemonset=daemonset,
        )

    # ── Volume checks ─────────────────────────────────────────────────────────

    def _bound_volume(self, claim: StorageClaim) -> StorageVolume:
        if not claim.volume_name:
            raise NotBoundError(f"claim {claim} is not bound to a volume yet")
        volume = self._store.get_volume(claim.volume_name)
        if volume is None:
            raise NotFoundError(
                f"volume {claim.volume_name} bound to claim {claim} does not exist"
            )
        return volume

    @staticmethod
    def _check_attributes(volume: StorageVolume, runtime_kind: RuntimeKind) -> None:
        if not volume.fluid_path or not volume.mount_type:
            raise AttributeMismatchError(
                f"volume {volume.name} carries no fluid_path/mount_type attributes; "
                f"it is not served by a dataset runtime"
            )
        if volume.mount_type != runtime_kind.value:
            raise AttributeMismatchError(
                f"volume {volume.name} has mount_type={volume.mount_type!r} but the "
                f"dataset is served by a {runtime_kind.value!r} runtime"
            )

    @staticmethod
    def _check_referring_labels(claim: StorageClaim, dataset: Dataset) -> None:
        origin = claim.referring_dataset
        if origin is not None and origin != dataset.ref:
            raise UnresolvedReferenceError(
                f"claim {claim} was created for dataset {origin}, but resolves "
                f"to {dataset.ref}"
            )

    def _check_shared_mount(
        self,
        claim: StorageClaim,
        volume: StorageVolume,
        dataset: Dataset,
    ) -> None:
        physical_claim = self._store.get_claim(dataset.namespace, dataset.name)
        if physical_claim is None:
            raise NotFoundError(
                f"claim {claim} mounts dataset {dataset.ref}, whose own claim "
                f"{dataset.ref} does not exist"
            )
        if not physical_claim.volume_name:
            raise NotBoundError(f"claim {physical_claim} is not bound to a volume yet")
        if physical_claim.volume_name == volume.name:
            return

        physical_volume = self._store.get_volume(physical_claim.volume_name)
        if physical_volume is None:
            raise NotFoundError(
                f"volume {physical_claim.volume_name} bound to claim "
                f"{physical_claim} does not exist"
            )
        if physical_volume.serving_identity != volume.serving_identity:
            raise AttributeMismatchError(
                f"reference volume {volume.name} "
                f"(fluid_path={volume.fluid_path!r}, mount_type={volume.mount_type!r}) "
                f"does not match physical volume {physical_volume.name} "
                f"(fluid_path={physical_volume.fluid_path!r}, "
                f"mount_type={physical_volume.mount_type!r})"
            )

    # ── Serving component ─────────────────────────────────────────────────────

    def _fuse_daemonset(
        self, dataset: Dataset, runtime_kind: RuntimeKind
    ) -> CachingDaemonSet:
        name = runtime_kind.fuse_daemonset_name(dataset.name)
        daemonset = self._store.get_daemonset(dataset.namespace, name)
        if daemonset is None:
            raise ServingComponentNotFoundError(
                f"{runtime_kind.value} runtime of dataset {dataset.ref} is not "
                f"deployed: daemonset {dataset.namespace}/{name} not found"
            )
        return daemonset
