"""
affinity_injector/control_plane/errors.py
──────────────────────────────────────────
Rejection reasons for one admission decision.

Every error here means "reject THIS workload's admission". None of them is
process-fatal and none is retried internally: the workload's creator (a
controller, a user re-applying) resubmits once the runtime is ready.

    InjectionRejectedError
    ├── NotFoundError                  claim / dataset / volume absent
    ├── NotBoundError                  dataset or claim not bound yet
    ├── UnresolvedReferenceError       reference target invalid or unbound
    ├── ReferenceChainTooDeepError     reference → reference
    ├── AttributeMismatchError         volume attributes ≠ resolved runtime
    ├── ServingComponentNotFoundError  caching DaemonSet never deployed
    └── LookupFailedError              object store could not answer
"""

from __future__ import annotations


class InjectionRejectedError(Exception):
    """
    Base class for every reason a workload is rejected.

    Attributes:
        reason: Human-readable explanation of why the workload was rejected.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class NotFoundError(InjectionRejectedError):
    pass


class NotBoundError(InjectionRejectedError):
    pass


class UnresolvedReferenceError(InjectionRejectedError):
    pass


class ReferenceChainTooDeepError(InjectionRejectedError):
    """Reference datasets may point at a physical dataset, never at another reference."""
    pass


class AttributeMismatchError(InjectionRejectedError):
    pass


class ServingComponentNotFoundError(InjectionRejectedError):
    """
    The runtime was declared but its fuse DaemonSet does not exist.

    By far the most common rejection in practice: the Dataset and Runtime
    objects were created but the runtime controller has not (yet) deployed
    the caching layer.
    """
    pass


class LookupFailedError(InjectionRejectedError):
    pass
