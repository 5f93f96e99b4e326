"""
affinity_injector/control_plane/injection_service.py
─────────────────────────────────────────────────────
Admission entrypoint: one decision per incoming workload.

decide(namespace, pod, store, policy) runs the full pipeline for every
dataset claim the pod mounts:

  UNRESOLVED ──resolve──▶ RESOLVED ──correlate──▶ CORRELATED
             ──compute_affinity──▶ AFFINITY_COMPUTED ──apply──▶ MUTATED

Any failure on any claim moves the whole call to REJECTED: the exception
propagates, no mutated pod is returned. Mutation and rejection are
mutually exclusive outcomes.

Injection mode
───────────────
  serverless.fluid.io/inject=true, no done label → SERVERLESS
      fuse will be injected as a sidecar by a separate path. We still
      resolve/correlate (so a broken dataset rejects early) and add the
      locality affinity, but leave mounts to the sidecar path.
  serverless + done.sidecar.fluid.io/inject=true  → SERVERLESS_INJECTED
      scheduling hints only; never flagged for injection again.
  anything else                                   → SERVERFUL
      fuse runs on the node; mounts get HostToContainer propagation.

Pods with no dataset claim pass through unchanged, whatever their labels.

Concurrency
────────────
decide() holds no state between calls and is safe to run concurrently
for different requests. Inside one call, independent claims can be
resolved on a thread pool (settings.max_concurrent_resolutions > 1).
Per-claim affinities are merged by identity, so the outcome does not
depend on which claim finishes first.

AffinityInjectionService
─────────────────────────
Thin wrapper for a transport: reads the locality policy once per call from
the store and turns the outcome into a status dict, the same shape for
every result so the transport never has to catch anything.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from kubernetes.client import models as k8s

from affinity_injector.control_plane.affinity_engine import (
    AffinityPolicyEngine,
    strictness_override,
)
from affinity_injector.control_plane.dataset_resolver import DatasetResolver
from affinity_injector.control_plane.errors import (
    InjectionRejectedError,
    LookupFailedError,
    NotFoundError,
)
from affinity_injector.control_plane.locality_correlator import CacheLocalityCorrelator
from affinity_injector.control_plane.mutation_builder import MutationBuilder, pod_name
from affinity_injector.lookup.store import ObjectStore, ObjectStoreError
from affinity_injector.shared.config import InjectorSettings, get_settings
from affinity_injector.shared.labels import (
    INJECT_SERVERFUL_FUSE_LABEL,
    INJECT_SERVERLESS_LABEL,
    INJECT_SIDECAR_DONE_LABEL,
    is_true,
)
from affinity_injector.shared.models import (
    DatasetPlacement,
    InjectionMode,
    NodeAffinitySpec,
    ResolutionState,
    TieredLocalityPolicy,
)

logger = logging.getLogger(__name__)


@dataclass
class InjectionResult:
    """
    Outcome of a successful decision.

    pod                     → the pod to admit (a mutated copy, or the
                              original object on pass-through)
    mode                    → injection mode read from the pod labels
    needs_sidecar_injection → the serverless sidecar path must still run
    serverful_fuse          → pod asked for an out-of-process fuse explicitly;
                              informational only, the mode and the mutation
                              are the same with or without it
    placements              → one record per dataset claim, all MUTATED
    affinity                → merged affinity that was applied
    """

    pod: k8s.V1Pod
    mode: InjectionMode
    needs_sidecar_injection: bool = False
    serverful_fuse: bool = False
    placements: List[DatasetPlacement] = field(default_factory=list)
    affinity: NodeAffinitySpec = field(default_factory=NodeAffinitySpec)

    @property
    def mutated(self) -> bool:
        return bool(self.placements)


def injection_mode(labels: Optional[Dict[str, str]]) -> InjectionMode:
    if is_true(labels, INJECT_SERVERLESS_LABEL):
        if is_true(labels, INJECT_SIDECAR_DONE_LABEL):
            return InjectionMode.SERVERLESS_INJECTED
        return InjectionMode.SERVERLESS
    return InjectionMode.SERVERFUL


def claim_volumes(pod: k8s.V1Pod) -> List[Tuple[str, str]]:
    """(pod volume name, claim name) for every PVC-backed volume of the pod."""
    spec = pod.spec
    if spec is None:
        return []
    return [
        (volume.name, volume.persistent_volume_claim.claim_name)
        for volume in spec.volumes or []
        if volume.persistent_volume_claim is not None
    ]


def decide(
    namespace: str,
    pod: k8s.V1Pod,
    store: ObjectStore,
    policy: Optional[TieredLocalityPolicy],
    settings: Optional[InjectorSettings] = None,
) -> InjectionResult:
    """
    Decide the placement hints for one workload.

    Args:
        namespace: Namespace of the admission request. Falls back to the
                   pod's own namespace when empty.
        pod:       The decoded workload. Never modified.
        store:     Read-only object lookups.
        policy:    Cluster tiered-locality policy, resolved once by the
                   caller for this call. None = no locality preference.
        settings:  Optional explicit settings (defaults to get_settings()).

    Returns:
        InjectionResult.

    Raises:
        InjectionRejectedError: any resolution failure; nothing is mutated.
    """
    settings = settings or get_settings()
    namespace = namespace or (pod.metadata.namespace if pod.metadata else "") or ""
    labels = (pod.metadata.labels if pod.metadata else None) or {}
    mode = injection_mode(labels)
    serverful_fuse = is_true(labels, INJECT_SERVERFUL_FUSE_LABEL)

    pipeline = _Pipeline(store, settings)
    placements = [
        p for p in pipeline.run_all(namespace, pod, policy) if p is not None
    ]

    if not placements:
        logger.debug("pod %s/%s mounts no dataset, passing through", namespace, pod_name(pod))
        return InjectionResult(pod=pod, mode=mode, serverful_fuse=serverful_fuse)

    affinity = NodeAffinitySpec()
    for placement in placements:
        affinity = affinity.merge(placement.affinity)

    # The sidecar path rewrites dataset mounts of serverless pods itself.
    volume_names = (
        [] if mode == InjectionMode.SERVERLESS else [p.pod_volume for p in placements]
    )
    mutated = MutationBuilder().apply(pod, volume_names, affinity)
    for placement in placements:
        placement.state = ResolutionState.MUTATED

    logger.info(
        "pod %s/%s: %d dataset(s) [%s], mode=%s, %d required / %d preferred term(s)",
        namespace, pod_name(pod), len(placements),
        ", ".join(str(p.resolution.dataset.ref) for p in placements),
        mode.value, len(affinity.required), len(affinity.preferred),
    )
    return InjectionResult(
        pod=mutated,
        mode=mode,
        needs_sidecar_injection=mode == InjectionMode.SERVERLESS,
        serverful_fuse=serverful_fuse,
        placements=placements,
        affinity=affinity,
    )


class _Pipeline:
    """Per-call wiring of resolver, correlator and policy engine."""

    def __init__(self, store: ObjectStore, settings: InjectorSettings) -> None:
        self._store = store
        self._settings = settings
        self._resolver = DatasetResolver(store)
        self._correlator = CacheLocalityCorrelator(store)
        self._engine = AffinityPolicyEngine(settings)

    def run_all(
        self,
        namespace: str,
        pod: k8s.V1Pod,
        policy: Optional[TieredLocalityPolicy],
    ) -> List[Optional[DatasetPlacement]]:
        volumes = claim_volumes(pod)
        workers = min(self._settings.max_concurrent_resolutions, len(volumes))
        if workers <= 1:
            return [self.run(namespace, pod, policy, v, c) for v, c in volumes]
        # map() yields in submission order and re-raises the first failure.
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(
                executor.map(
                    lambda vc: self.run(namespace, pod, policy, vc[0], vc[1]),
                    volumes,
                )
            )

    def run(
        self,
        namespace: str,
        pod: k8s.V1Pod,
        policy: Optional[TieredLocalityPolicy],
        pod_volume: str,
        claim_name: str,
    ) -> Optional[DatasetPlacement]:
        """One claim through resolve → correlate → affinity. None if not a dataset claim."""
        try:
            claim = self._store.get_claim(namespace, claim_name)
            if claim is None:
                raise NotFoundError(
                    f"claim {namespace}/{claim_name} mounted as volume "
                    f"{pod_volume!r} does not exist"
                )
            if not claim.is_dataset_claim:
                logger.debug("claim %s is not dataset-backed, skipped", claim)
                return None

            placement = DatasetPlacement(pod_volume=pod_volume, claim=claim)

            resolution = self._resolver.resolve(namespace, claim_name)
            placement.resolution = resolution
            placement.state = ResolutionState.RESOLVED

            placement.correlation = self._correlator.correlate(
                claim, resolution.dataset, resolution.runtime_kind
            )
            placement.state = ResolutionState.CORRELATED

            placement.strictness = strictness_override(pod, resolution)
            placement.affinity = self._engine.compute_affinity(
                resolution.dataset, policy, placement.strictness
            )
            placement.state = ResolutionState.AFFINITY_COMPUTED
            return placement

        except ObjectStoreError as exc:
            raise LookupFailedError(exc.reason) from exc


class AffinityInjectionService:
    """
    Transport-facing wrapper around decide().

    Public API:
        decide(namespace, pod) → InjectionResult   (raises on rejection)
        review(namespace, pod) → Dict[str, Any]    (never raises)
    """

    def __init__(
        self,
        store: ObjectStore,
        settings: Optional[InjectorSettings] = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()

    def load_policy(self) -> Optional[TieredLocalityPolicy]:
        try:
            policy = self._store.get_tiered_locality_policy()
        except ObjectStoreError as exc:
            raise LookupFailedError(exc.reason) from exc
        if policy is None:
            logger.warning("No tiered locality policy found, no affinity will be injected")
        return policy

    def decide(self, namespace: str, pod: k8s.V1Pod) -> InjectionResult:
        # Pods without claim volumes never pay for the policy lookup.
        if not claim_volumes(pod):
            return decide(namespace, pod, self._store, None, self._settings)
        return decide(namespace, pod, self._store, self.load_policy(), self._settings)

    def review(self, namespace: str, pod: k8s.V1Pod) -> Dict[str, Any]:
        """
        Run decide() and report the outcome.

        Returns:
            {"status": "MUTATED"|"PASSTHROUGH"|"REJECTED"|"ERROR",
             "allowed": bool, "pod": V1Pod|None, "message": str,
             "needs_sidecar_injection": bool}

            On REJECTED/ERROR, "allowed" follows settings.fail_open and
            "pod" is None: the caller admits the original pod unmodified
            or denies it, never a partially mutated one.
        """
        try:
            result = self.decide(namespace, pod)
        except InjectionRejectedError as e:
            logger.info("pod %s/%s rejected: %s", namespace, pod_name(pod), e.reason)
            return {
                "status": "REJECTED",
                "allowed": self._settings.fail_open,
                "pod": None,
                "message": f"{e.__class__.__name__}: {e.reason}",
                "needs_sidecar_injection": False,
            }
        except Exception as e:
            logger.exception("Unexpected error deciding pod %s/%s", namespace, pod_name(pod))
            return {
                "status": "ERROR",
                "allowed": self._settings.fail_open,
                "pod": None,
                "message": f"Unexpected error: {e.__class__.__name__}: {e}",
                "needs_sidecar_injection": False,
            }

        return {
            "status": "MUTATED" if result.mutated else "PASSTHROUGH",
            "allowed": True,
            "pod": result.pod,
            "message": (
                f"{len(result.placements)} dataset(s) resolved, mode={result.mode.value}"
                if result.mutated else "no dataset volumes"
            ),
            "needs_sidecar_injection": result.needs_sidecar_injection,
        }
