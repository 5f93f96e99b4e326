"""
affinity_injector/control_plane/dataset_resolver.py
────────────────────────────────────────────────────
Dataset Resolver: claim name → effective (physical) dataset + runtime kind.

The platform names a dataset's claim after the dataset, so the claim
`ns/name` belongs to the Dataset `ns/name`. That dataset is one of two
variants:

  physical  → it owns a runtime. It must be Bound and list a runtime.
  reference → its single mount is `dataset://<ns>/<name>`; the dataset
              at that address is the one actually serving data.

Reference indirection is followed exactly ONE hop. Depth is not merely
supported up to one, it is enforced: a reference that points at another
reference is rejected (ReferenceChainTooDeepError) instead of being walked.

Outcomes
─────────
  dataset absent                          → NotFoundError
  physical, not Bound / no runtime        → NotBoundError
  reference, malformed address            → UnresolvedReferenceError
  reference, target absent                → UnresolvedReferenceError
  reference, target is a reference        → ReferenceChainTooDeepError
  reference, target not Bound / no runtime → UnresolvedReferenceError
  runtime record of the physical dataset absent → NotBoundError

The runtime kind returned for a reference is the PHYSICAL dataset's kind.
The reference dataset typically lists a "thin" runtime of its own; that
runtime only forwards and is never what the workload's data comes from.
"""

from __future__ import annotations

import logging
from typing import Optional

from affinity_injector.control_plane.errors import (
    NotBoundError,
    NotFoundError,
    ReferenceChainTooDeepError,
    UnresolvedReferenceError,
)
from affinity_injector.lookup.store import ObjectStore
from affinity_injector.shared.models import Dataset, DatasetRef, Resolution

logger = logging.getLogger(__name__)


class DatasetResolver:
    """
    Resolves a claim to the dataset whose cache actually serves it.

    Stateless apart from the store handle: one instance can serve any
    number of concurrent admission calls.
    """

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    def resolve(self, claim_namespace: str, claim_name: str) -> Resolution:
        """
        Resolve `claim_namespace/claim_name` to its effective dataset.

        Raises:
            NotFoundError, NotBoundError, UnresolvedReferenceError,
            ReferenceChainTooDeepError (see module docstring).
        """
        dataset = self._store.get_dataset(claim_namespace, claim_name)
        if dataset is None:
            raise NotFoundError(
                f"no dataset {claim_namespace}/{claim_name} backs claim "
                f"{claim_namespace}/{claim_name}"
            )

        target = self._reference_target(dataset)
        if target is None:
            self._check_physical(dataset)
            return self._resolution(dataset, reference=None)

        physical = self._follow_reference(dataset, target)
        logger.debug("dataset %s → physical dataset %s", dataset.ref, physical.ref)
        return self._resolution(physical, reference=dataset)

    # ── Variants ──────────────────────────────────────────────────────────────

    @staticmethod
    def _reference_target(dataset: Dataset) -> Optional[DatasetRef]:
        try:
            return dataset.reference_target()
        except ValueError as exc:
            raise UnresolvedReferenceError(
                f"dataset {dataset.ref} has an invalid reference: {exc}"
            ) from exc

    @staticmethod
    def _check_physical(dataset: Dataset) -> None:
        if not dataset.is_bound:
            raise NotBoundError(
                f"dataset {dataset.ref} is not bound "
                f"(phase={dataset.phase.value or 'None'})"
            )
        if dataset.runtime_kind is None:
            raise NotBoundError(f"dataset {dataset.ref} has no runtime attached")

    def _follow_reference(self, dataset: Dataset, target: DatasetRef) -> Dataset:
        physical = self._store.get_dataset(target.namespace, target.name)
        if physical is None:
            raise UnresolvedReferenceError(
                f"dataset {dataset.ref} references {target}, which does not exist"
            )
        if physical.is_reference:
            raise ReferenceChainTooDeepError(
                f"dataset {dataset.ref} references {target}, which is itself a "
                f"reference dataset; only one level of indirection is allowed"
            )
        if not physical.is_bound or physical.runtime_kind is None:
            raise UnresolvedReferenceError(
                f"dataset {dataset.ref} references {target}, which is not bound "
                f"to a runtime"
            )
        return physical

    # ── Runtime ───────────────────────────────────────────────────────────────

    def _resolution(self, physical: Dataset, reference: Optional[Dataset]) -> Resolution:
        kind = physical.runtime_kind
        runtime = self._store.get_runtime(physical.namespace, physical.name, kind)
        if runtime is None:
            raise NotBoundError(
                f"dataset {physical.ref} is bound to a {kind.value} runtime, but "
                f"{kind.resource_kind} {physical.ref} does not exist"
            )
        return Resolution(
            dataset=physical,
            runtime_kind=kind,
            runtime=runtime,
            reference=reference,
        )
