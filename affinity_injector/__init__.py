"""
affinity_injector — dataset cache affinity injection for workload admission.

Public API:
    decide                    — one admission decision for one pod
    AffinityInjectionService  — decide() + policy lookup + status dict
    InjectionRejectedError    — raised when the pod must be rejected

Usage:
    from affinity_injector import AffinityInjectionService
    from affinity_injector.lookup import KubeObjectStore

    service = AffinityInjectionService(KubeObjectStore.from_environment())
    outcome = service.review(namespace, pod)   # {"status": "MUTATED", ...}
"""

from affinity_injector.control_plane import (
    AffinityInjectionService,
    InjectionRejectedError,
    InjectionResult,
    decide,
)

__all__ = [
    "AffinityInjectionService",
    "InjectionRejectedError",
    "InjectionResult",
    "decide",
]
