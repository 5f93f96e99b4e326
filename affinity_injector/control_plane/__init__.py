"""
affinity_injector/control_plane — the decision engine.

Public API:
    DatasetResolver          — claim → effective dataset + runtime kind
    CacheLocalityCorrelator  — claim + dataset → volume, serving path, DaemonSet
    AffinityPolicyEngine     — tiered locality policy × override → NodeAffinitySpec
    MutationBuilder          — mount propagation + node affinity on a pod copy
    decide()                 — admission entrypoint (raises on rejection)
    AffinityInjectionService — transport-facing wrapper, returns a status dict
    InjectionResult          — outcome of a successful decision
    InjectionRejectedError   — base of every rejection reason
"""

from affinity_injector.control_plane.errors import (
    AttributeMismatchError,
    InjectionRejectedError,
    LookupFailedError,
    NotBoundError,
    NotFoundError,
    ReferenceChainTooDeepError,
    ServingComponentNotFoundError,
    UnresolvedReferenceError,
)
from affinity_injector.control_plane.dataset_resolver import DatasetResolver
from affinity_injector.control_plane.locality_correlator import CacheLocalityCorrelator
from affinity_injector.control_plane.affinity_engine import (
    AffinityPolicyEngine,
    strictness_override,
)
from affinity_injector.control_plane.mutation_builder import MutationBuilder
from affinity_injector.control_plane.injection_service import (
    AffinityInjectionService,
    InjectionResult,
    decide,
)

__all__ = [
    "DatasetResolver",
    "CacheLocalityCorrelator",
    "AffinityPolicyEngine",
    "strictness_override",
    "MutationBuilder",
    "decide",
    "AffinityInjectionService",
    "InjectionResult",
    "InjectionRejectedError",
    "NotFoundError",
    "NotBoundError",
    "UnresolvedReferenceError",
    "ReferenceChainTooDeepError",
    "AttributeMismatchError",
    "ServingComponentNotFoundError",
    "LookupFailedError",
]
