"""
affinity_injector/shared/models.py
───────────────────────────────────
The single source of truth for every data structure the injector reasons
about.

Design philosophy
-----------------
Every model answers one question: "What does the injector *need to know*
about this object in order to decide where a workload should land?"

The cluster hands us loosely-typed objects (label maps, CSI attribute maps,
custom-resource dicts). Those are translated into the models below exactly
once, in lookup/translate.py. From that point on the control plane only
touches typed fields.

The workload itself stays a kubernetes.client V1Pod: it is the one object
we mutate and hand back, so it keeps the client library's shape.

Reading guide
-------------
Read top-to-bottom. Each model builds on the ones above it.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from affinity_injector.shared.labels import DATASET_MOUNT_SCHEME


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 1: ENUMERATIONS
# ─────────────────────────────────────────────────────────────────────────────

class RuntimeKind(str, Enum):
    """
    The closed set of caching engines a dataset can be bound to.

    The value is the runtime "type" string the platform writes into
    dataset status and into the CSI mount_type attribute.
    """
    ALLUXIO = "alluxio"
    JINDO = "jindo"
    GOOSEFS = "goosefs"
    JUICEFS = "juicefs"
    THIN = "thin"
    EFC = "efc"
    VINEYARD = "vineyard"

    @property
    def fuse_component(self) -> str:
        """
        Component name used in the caching DaemonSet name.

        JindoFS ships its fuse client as "jindofs"; every other engine
        uses its own kind name.
        """
        if self is RuntimeKind.JINDO:
            return "jindofs"
        return self.value

    def fuse_daemonset_name(self, dataset_name: str) -> str:
        """`<dataset>-<component>-fuse`, e.g. "imagenet-jindofs-fuse"."""
        return f"{dataset_name}-{self.fuse_component}-fuse"

    @property
    def resource_kind(self) -> str:
        """Custom resource kind, e.g. "JindoRuntime"."""
        return {
            RuntimeKind.ALLUXIO: "AlluxioRuntime",
            RuntimeKind.JINDO: "JindoRuntime",
            RuntimeKind.GOOSEFS: "GooseFSRuntime",
            RuntimeKind.JUICEFS: "JuiceFSRuntime",
            RuntimeKind.THIN: "ThinRuntime",
            RuntimeKind.EFC: "EFCRuntime",
            RuntimeKind.VINEYARD: "VineyardRuntime",
        }[self]

    @property
    def resource_plural(self) -> str:
        """Custom resource plural, e.g. "jindoruntimes"."""
        return self.resource_kind.lower() + "s"


class DatasetPhase(str, Enum):
    """
    Lifecycle phase of a dataset as reported in its status.

    Only BOUND datasets have a runtime serving their data.
    """
    NONE = ""
    PENDING = "Pending"
    NOT_BOUND = "NotBound"
    BOUND = "Bound"
    FAILED = "Failed"
    UPDATING = "Updating"


class InjectionMode(str, Enum):
    """
    How the fuse client reaches the workload.

    SERVERFUL          → fuse runs on the node as a DaemonSet pod (default).
    SERVERLESS         → fuse must be injected into the pod as a sidecar;
                         that injection is a separate path, we only flag it.
    SERVERLESS_INJECTED → sidecar already injected; only scheduling hints
                         are added, the sidecar is never injected twice.
    """
    SERVERFUL = "serverful"
    SERVERLESS = "serverless"
    SERVERLESS_INJECTED = "serverless-injected"


class SchedulingStrictness(str, Enum):
    """
    Per-workload locality strictness for one dataset.

    DEFAULT  → honour the cluster tiered-locality tiers as configured.
    REQUIRED → every preferred tier of this dataset becomes required.
    """
    DEFAULT = "default"
    REQUIRED = "required"


class ResolutionState(str, Enum):
    """Progress of one dataset claim through a single admission call."""
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    CORRELATED = "correlated"
    AFFINITY_COMPUTED = "affinity-computed"
    MUTATED = "mutated"
    REJECTED = "rejected"


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 2: DATASETS AND RUNTIMES
# ─────────────────────────────────────────────────────────────────────────────

class DatasetRef(BaseModel):
    """A namespace-qualified dataset name."""
    namespace: str
    name: str

    @classmethod
    def from_mount_point(cls, mount_point: str) -> "DatasetRef":
        """
        Parse a virtual mount address `dataset://<namespace>/<name>`.

        Raises:
            ValueError: if the address is not of that exact shape.
        """
        if not mount_point.startswith(DATASET_MOUNT_SCHEME):
            raise ValueError(f"{mount_point!r} is not a dataset:// address")
        parts = mount_point[len(DATASET_MOUNT_SCHEME):].strip("/").split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(
                f"{mount_point!r} must look like dataset://<namespace>/<name>"
            )
        return cls(namespace=parts[0], name=parts[1])

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class DatasetMount(BaseModel):
    """One entry of a dataset's spec.mounts."""
    mount_point: str = Field(..., description="Remote address, e.g. oss://bucket/path")
    name: str = Field("", description="Optional mount name")

    @property
    def is_dataset_reference(self) -> bool:
        return self.mount_point.startswith(DATASET_MOUNT_SCHEME)


class RuntimeRef(BaseModel):
    """One entry of a dataset's status.runtimes: the runtime bound to it."""
    kind: RuntimeKind
    name: str = ""
    namespace: str = ""


class Dataset(BaseModel):
    """
    A named, namespaced logical dataset.

    Physical vs reference
    ──────────────────────
    A dataset is either:
      physical  → no dataset:// mount; owns a runtime directly.
      reference → exactly one mount, `dataset://<ns>/<name>`, forwarding
                  to another (physical) dataset.

    `reference_target()` is the tagged-variant accessor: None for physical
    datasets, the target for references, ValueError for anything else
    (a dataset:// mount mixed with other mounts, or a malformed address).
    """
    name: str
    namespace: str
    phase: DatasetPhase = DatasetPhase.NONE
    mounts: List[DatasetMount] = Field(default_factory=list)
    runtimes: List[RuntimeRef] = Field(default_factory=list)

    @property
    def ref(self) -> DatasetRef:
        return DatasetRef(namespace=self.namespace, name=self.name)

    @property
    def is_reference(self) -> bool:
        return any(m.is_dataset_reference for m in self.mounts)

    @property
    def is_bound(self) -> bool:
        return self.phase == DatasetPhase.BOUND

    @property
    def runtime_kind(self) -> Optional[RuntimeKind]:
        """Kind of the active runtime, None when no runtime is attached."""
        return self.runtimes[0].kind if self.runtimes else None

    @property
    def locality_value(self) -> str:
        """Per-node locality label value, `<namespace>-<name>`."""
        return f"{self.namespace}-{self.name}"

    def reference_target(self) -> Optional[DatasetRef]:
        if not self.is_reference:
            return None
        if len(self.mounts) != 1:
            raise ValueError(
                f"dataset {self.ref} mixes a dataset:// mount with "
                f"{len(self.mounts) - 1} other mount(s)"
            )
        return DatasetRef.from_mount_point(self.mounts[0].mount_point)


class RuntimeRecord(BaseModel):
    """A caching runtime instance. Its name always equals the dataset name."""
    kind: RuntimeKind
    name: str
    namespace: str


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 3: STORAGE BINDING
# ─────────────────────────────────────────────────────────────────────────────

class StorageClaim(BaseModel):
    """
    The PersistentVolumeClaim a workload mounts.

    Fields:
        volume_name        → bound PersistentVolume; None while pending.
        is_dataset_claim   → the claim carries the dataset label, i.e. it
                             was created by the platform for a dataset.
        referring_dataset  → for claims created for a reference dataset,
                             the physical dataset they were cut from.
    """
    name: str
    namespace: str
    volume_name: Optional[str] = None
    is_dataset_claim: bool = False
    referring_dataset: Optional[DatasetRef] = None

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class StorageVolume(BaseModel):
    """The PersistentVolume behind a claim, reduced to the CSI attributes we read."""
    name: str
    driver: Optional[str] = None
    fluid_path: Optional[str] = None
    mount_type: Optional[str] = None

    @property
    def serving_identity(self) -> Tuple[Optional[str], Optional[str]]:
        """(fluid_path, mount_type): equal on a physical volume and its references."""
        return (self.fluid_path, self.mount_type)


class FuseContainer(BaseModel):
    name: str
    image: str = ""
    privileged: bool = False
    mount_paths: List[str] = Field(default_factory=list)


class CachingDaemonSet(BaseModel):
    """The per-node fuse DaemonSet that serves a runtime's cached data."""
    name: str
    namespace: str
    containers: List[FuseContainer] = Field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 4: LOCALITY POLICY AND AFFINITY OUTPUT
# ─────────────────────────────────────────────────────────────────────────────

class PreferredLocality(BaseModel):
    """A preferred tier: node label key plus scheduler weight (1–100)."""
    name: str
    weight: int = Field(..., ge=1, le=100)


class TieredLocalityPolicy(BaseModel):
    """
    Cluster-wide tiered locality configuration.

    Example (the ConfigMap payload this is parsed from):

        preferred:
          - name: fluid.io/node
            weight: 100
        required:
          - fluid.io/node

    Order matters only for readability of the resulting pod spec; terms are
    deduplicated by identity, never by position.
    """
    preferred: List[PreferredLocality] = Field(default_factory=list)
    required: List[str] = Field(default_factory=list)


class LocalityRequirement(BaseModel):
    """One node-selector requirement, e.g. `fluid.io/s-ns-name In [true]`."""
    key: str
    operator: str = "In"
    values: List[str] = Field(default_factory=list)

    @property
    def identity(self) -> Tuple[str, str, Tuple[str, ...]]:
        return (self.key, self.operator, tuple(self.values))


class WeightedLocalityTerm(BaseModel):
    weight: int = Field(..., ge=1, le=100)
    requirement: LocalityRequirement

    @property
    def identity(self) -> Tuple[int, Tuple[str, str, Tuple[str, ...]]]:
        return (self.weight, self.requirement.identity)


class NodeAffinitySpec(BaseModel):
    """
    Affinity the injector wants on a workload.

    required  → AND-ed into every required node-selector term of the pod.
    preferred → appended as individual weighted preferred terms.
    """
    required: List[LocalityRequirement] = Field(default_factory=list)
    preferred: List[WeightedLocalityTerm] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.required and not self.preferred

    def merge(self, other: "NodeAffinitySpec") -> "NodeAffinitySpec":
        """Union of both specs, deduplicated by identity, order of first sight kept."""
        required: Dict[tuple, LocalityRequirement] = {}
        for req in [*self.required, *other.required]:
            required.setdefault(req.identity, req)
        preferred: Dict[tuple, WeightedLocalityTerm] = {}
        for term in [*self.preferred, *other.preferred]:
            preferred.setdefault(term.identity, term)
        return NodeAffinitySpec(
            required=list(required.values()),
            preferred=list(preferred.values()),
        )


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 5: PER-CLAIM RESULTS
# What each stage of the pipeline hands to the next.
# ─────────────────────────────────────────────────────────────────────────────

class Resolution(BaseModel):
    """
    Output of the Dataset Resolver.

    dataset      → the effective (always physical) dataset.
    runtime_kind → the physical dataset's runtime kind.
    runtime      → the runtime record serving it.
    reference    → the workload-facing reference dataset, when the claim
                   went through one level of indirection.
    """
    dataset: Dataset
    runtime_kind: RuntimeKind
    runtime: RuntimeRecord
    reference: Optional[Dataset] = None

    @property
    def via_reference(self) -> bool:
        return self.reference is not None


class Correlation(BaseModel):
    """Output of the Cache Locality Correlator."""
    volume: StorageVolume
    serving_path: str
    daemonset: CachingDaemonSet


class DatasetPlacement(BaseModel):
    """
    Everything learned about one dataset claim of the workload.

    pod_volume is the name of the pod-level volume, which is what
    container volume mounts refer to.
    """
    pod_volume: str
    claim: StorageClaim
    state: ResolutionState = ResolutionState.UNRESOLVED
    resolution: Optional[Resolution] = None
    correlation: Optional[Correlation] = None
    strictness: SchedulingStrictness = SchedulingStrictness.DEFAULT
    affinity: NodeAffinitySpec = Field(default_factory=NodeAffinitySpec)
