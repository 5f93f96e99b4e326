"""
affinity_injector/control_plane/affinity_engine.py
───────────────────────────────────────────────────
Affinity Policy Engine: tiered locality policy × workload override → affinity.

Inputs
───────
  TieredLocalityPolicy (cluster-wide, may be None):
      required:  [key, ...]               → hard tiers
      preferred: [(key, weight), ...]     → soft tiers
  SchedulingStrictness (per workload, per dataset):
      DEFAULT  → tiers as configured
      REQUIRED → every preferred tier is promoted to required

Output
───────
  NodeAffinitySpec for ONE dataset:
      required  → requirements AND-ed together (one node-selector term)
      preferred → one weighted term per preferred tier

Requirement values
───────────────────
Each tier key is turned into a node-selector requirement pointing at the
dataset's locality:

  fluid.io/node (reserved) → fluid.io/s-<ns>-<name> In ["true"]
                             the label the platform puts on every node
                             currently caching the dataset
  any other key            → <key> In ["<ns>-<name>"]

A key that ends up required is not also emitted as preferred: the hard
term already implies it.

Soft failure
─────────────
No policy → empty spec. Clusters without a caching layer still admit
workloads; the pod just gets no locality hints.

Asymmetry
──────────
The override can only tighten (preferred → required). There is no label
that relaxes a required tier: other components rely on required locality
holding, so a workload may not opt out of it.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from kubernetes.client import models as k8s

from affinity_injector.shared.config import InjectorSettings, get_settings
from affinity_injector.shared.labels import (
    LABEL_TRUE,
    sched_required,
    storage_capacity_label,
)
from affinity_injector.shared.models import (
    Dataset,
    LocalityRequirement,
    NodeAffinitySpec,
    Resolution,
    SchedulingStrictness,
    TieredLocalityPolicy,
    WeightedLocalityTerm,
)

logger = logging.getLogger(__name__)


def strictness_override(pod: k8s.V1Pod, resolution: Resolution) -> SchedulingStrictness:
    """
    Read `fluid.io/dataset.<name>.sched` for this dataset from the pod labels.

    The workload may name the dataset by the name it mounts (the reference
    dataset, when there is one) or by the physical dataset's name.
    """
    labels = (pod.metadata.labels if pod.metadata else None) or {}
    names = [resolution.dataset.name]
    if resolution.reference is not None:
        names.insert(0, resolution.reference.name)
    if sched_required(labels, *names):
        return SchedulingStrictness.REQUIRED
    return SchedulingStrictness.DEFAULT


class AffinityPolicyEngine:
    """
    Stateless policy evaluator.

    Usage:
        engine = AffinityPolicyEngine()
        spec = engine.compute_affinity(dataset, policy, SchedulingStrictness.REQUIRED)
    """

    def __init__(self, settings: Optional[InjectorSettings] = None) -> None:
        self._settings = settings or get_settings()

    def compute_affinity(
        self,
        dataset: Dataset,
        policy: Optional[TieredLocalityPolicy],
        strictness: SchedulingStrictness = SchedulingStrictness.DEFAULT,
    ) -> NodeAffinitySpec:
        """
        Args:
            dataset:    The effective (physical) dataset.
            policy:     Cluster policy, resolved once by the caller. None = absent.
            strictness: Workload override for this dataset.

        Returns:
            NodeAffinitySpec for this dataset (empty when policy is None).
        """
        if policy is None:
            return NodeAffinitySpec()

        required_keys: List[str] = _unique(policy.required)
        if strictness == SchedulingStrictness.REQUIRED:
            required_keys = _unique(required_keys + [p.name for p in policy.preferred])

        required = [self._requirement(key, dataset) for key in required_keys]
        preferred = [
            WeightedLocalityTerm(
                weight=tier.weight,
                requirement=self._requirement(tier.name, dataset),
            )
            for tier in policy.preferred
            if tier.name not in required_keys
        ]

        spec = NodeAffinitySpec().merge(
            NodeAffinitySpec(required=required, preferred=preferred)
        )
        logger.debug(
            "dataset %s (%s): %d required, %d preferred locality term(s)",
            dataset.ref, strictness.value, len(spec.required), len(spec.preferred),
        )
        return spec

    def _requirement(self, key: str, dataset: Dataset) -> LocalityRequirement:
        if key == self._settings.dataset_locality_key:
            return LocalityRequirement(
                key=storage_capacity_label(dataset.namespace, dataset.name),
                values=[LABEL_TRUE],
            )
        return LocalityRequirement(key=key, values=[dataset.locality_value])


def _unique(keys: List[str]) -> List[str]:
    return list(dict.fromkeys(keys))
