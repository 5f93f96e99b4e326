"""
affinity_injector/control_plane/mutation_builder.py
────────────────────────────────────────────────────
Mutation Builder: the only component that changes a workload.

apply(pod, volume_names, affinity) returns a mutated DEEP COPY of the pod;
the input object is never touched. Two edits are made:

  1. Mount propagation
     Every container / init container mount of a dataset volume gets
     mountPropagation=HostToContainer, so that a fuse mount made later by
     the node-local caching process becomes visible inside the container
     without a restart. Mounts already at HostToContainer are left alone.

  2. Node affinity
     required  → AND-ed into EVERY existing required node-selector term
                 (terms are OR-ed by the scheduler, so adding the
                 requirements to each keeps the dataset constraint on every
                 alternative). With no existing term, one is created.
     preferred → appended as weighted preferred terms.

Idempotence
────────────
Requirements are skipped when an identical (key, operator, values) is
already present in the term; preferred terms are skipped when an identical
(weight, match_expressions, match_fields) term exists; the injector
never emits match_fields, so a user term that adds a field selector to the
same expression is a different term. apply(apply(p)) == apply(p), which is
what makes an admission retry harmless.

Everything else on the pod (pod affinity, anti-affinity, unrelated node
terms, match_fields) is preserved as-is.
"""

from __future__ import annotations

import copy
import logging
from typing import Iterable, List, Set, Tuple

from kubernetes.client import models as k8s

from affinity_injector.shared.models import LocalityRequirement, NodeAffinitySpec

logger = logging.getLogger(__name__)

MOUNT_PROPAGATION_HOST_TO_CONTAINER = "HostToContainer"

_Identity = Tuple[str, str, Tuple[str, ...]]
_TermIdentity = Tuple[int, Tuple[_Identity, ...], Tuple[_Identity, ...]]


class MutationBuilder:
    """Applies mount propagation and node affinity to a pod."""

    def apply(
        self,
        pod: k8s.V1Pod,
        volume_names: Iterable[str],
        affinity: NodeAffinitySpec,
    ) -> k8s.V1Pod:
        """
        Args:
            pod:          The workload under admission (not modified).
            volume_names: Pod-level volume names whose mounts get propagation.
            affinity:     Merged affinity for all of the pod's datasets.

        Returns:
            The mutated copy.
        """
        mutated = copy.deepcopy(pod)
        if mutated.spec is None:
            return mutated

        changed_mounts = self._set_mount_propagation(mutated.spec, set(volume_names))
        if not affinity.is_empty:
            self._inject_node_affinity(mutated.spec, affinity)

        logger.debug(
            "pod %s: %d mount(s) switched to %s, %d required + %d preferred term(s) merged",
            pod_name(mutated), changed_mounts, MOUNT_PROPAGATION_HOST_TO_CONTAINER,
            len(affinity.required), len(affinity.preferred),
        )
        return mutated

    # ── Mount propagation ─────────────────────────────────────────────────────

    @staticmethod
    def _set_mount_propagation(spec: k8s.V1PodSpec, volume_names: Set[str]) -> int:
        if not volume_names:
            return 0
        changed = 0
        containers = [*(spec.init_containers or []), *(spec.containers or [])]
        for container in containers:
            for mount in container.volume_mounts or []:
                if mount.name not in volume_names:
                    continue
                if mount.mount_propagation == MOUNT_PROPAGATION_HOST_TO_CONTAINER:
                    continue
                mount.mount_propagation = MOUNT_PROPAGATION_HOST_TO_CONTAINER
                changed += 1
        return changed

    # ── Node affinity ─────────────────────────────────────────────────────────

    def _inject_node_affinity(
        self, spec: k8s.V1PodSpec, affinity: NodeAffinitySpec
    ) -> None:
        if spec.affinity is None:
            spec.affinity = k8s.V1Affinity()
        if spec.affinity.node_affinity is None:
            spec.affinity.node_affinity = k8s.V1NodeAffinity()
        node_affinity = spec.affinity.node_affinity

        if affinity.required:
            self._merge_required(node_affinity, affinity.required)
        if affinity.preferred:
            self._merge_preferred(node_affinity, affinity)

    @staticmethod
    def _merge_required(
        node_affinity: k8s.V1NodeAffinity,
        requirements: List[LocalityRequirement],
    ) -> None:
        selector = node_affinity.required_during_scheduling_ignored_during_execution
        if selector is None:
            selector = k8s.V1NodeSelector(node_selector_terms=[])
            node_affinity.required_during_scheduling_ignored_during_execution = selector
        if not selector.node_selector_terms:
            selector.node_selector_terms = [k8s.V1NodeSelectorTerm(match_expressions=[])]

        for term in selector.node_selector_terms:
            expressions = list(term.match_expressions or [])
            present = {_identity(e) for e in expressions}
            for req in requirements:
                if req.identity in present:
                    continue
                expressions.append(_to_k8s_requirement(req))
                present.add(req.identity)
            term.match_expressions = expressions

    @staticmethod
    def _merge_preferred(
        node_affinity: k8s.V1NodeAffinity,
        affinity: NodeAffinitySpec,
    ) -> None:
        terms = list(node_affinity.preferred_during_scheduling_ignored_during_execution or [])
        present = {_term_identity(t) for t in terms if t.preference is not None}
        for wanted in affinity.preferred:
            key = (wanted.weight, (wanted.requirement.identity,), ())
            if key in present:
                continue
            terms.append(
                k8s.V1PreferredSchedulingTerm(
                    weight=wanted.weight,
                    preference=k8s.V1NodeSelectorTerm(
                        match_expressions=[_to_k8s_requirement(wanted.requirement)]
                    ),
                )
            )
            present.add(key)
        node_affinity.preferred_during_scheduling_ignored_during_execution = terms


def _identity(expression: k8s.V1NodeSelectorRequirement) -> _Identity:
    return (expression.key, expression.operator, tuple(expression.values or []))


def _term_identity(term: k8s.V1PreferredSchedulingTerm) -> _TermIdentity:
    """(weight, match_expressions, match_fields) of an existing preferred term."""
    preference = term.preference
    return (
        term.weight,
        tuple(_identity(e) for e in preference.match_expressions or []),
        tuple(_identity(f) for f in preference.match_fields or []),
    )


def _to_k8s_requirement(req: LocalityRequirement) -> k8s.V1NodeSelectorRequirement:
    return k8s.V1NodeSelectorRequirement(
        key=req.key,
        operator=req.operator,
        values=list(req.values),
    )


def pod_name(pod: k8s.V1Pod) -> str:
    metadata = pod.metadata
    if metadata is None:
        return "<unnamed>"
    return metadata.name or metadata.generate_name or "<unnamed>"
