"""
affinity_injector/shared/labels.py
───────────────────────────────────
Well-known label, annotation and CSI attribute keys.

Everything the cluster tells us "by convention" (a label that happens to
be called X, an attribute map entry that happens to be called Y) is named
here, once. The translation layer (lookup/translate.py) and the pod label
readers below are the only places that read these strings; the rest of the
code works on typed fields.

Pod labels read by the injector
────────────────────────────────
  serverless.fluid.io/inject=true       → fuse must run as an in-pod sidecar
  done.sidecar.fluid.io/inject=true     → the sidecar is already injected
  fuse.serverful.fluid.io/inject=true   → fuse runs out-of-process on the node
  fluid.io/dataset.<name>.sched=required → upgrade <name>'s locality to required

Claim labels
─────────────
  fluid.io/s-<ns>-<name>=true           → claim is backed by dataset ns/name
  fluid.io/dataset-referring-name       → origin dataset of a reference claim
  fluid.io/dataset-referring-namespace

Volume (CSI) attributes
────────────────────────
  fluid_path  → serving path of the fuse mount on the node
  mount_type  → runtime kind string, e.g. "jindo"
"""

from __future__ import annotations

from typing import Mapping, Optional

LABEL_TRUE = "true"

# ── Injection-mode labels ─────────────────────────────────────────────────────
INJECT_SERVERLESS_LABEL = "serverless.fluid.io/inject"
INJECT_SIDECAR_DONE_LABEL = "done.sidecar.fluid.io/inject"
INJECT_SERVERFUL_FUSE_LABEL = "fuse.serverful.fluid.io/inject"

# ── Scheduling strictness override ────────────────────────────────────────────
DATASET_SCHED_LABEL_TEMPLATE = "fluid.io/dataset.{name}.sched"
SCHED_REQUIRED = "required"

# ── Claim labels ──────────────────────────────────────────────────────────────
STORAGE_CAPACITY_LABEL_PREFIX = "fluid.io/s-"
DATASET_REFERRING_NAME_LABEL = "fluid.io/dataset-referring-name"
DATASET_REFERRING_NAMESPACE_LABEL = "fluid.io/dataset-referring-namespace"

# ── CSI volume attributes ─────────────────────────────────────────────────────
VOLUME_ATTR_FLUID_PATH = "fluid_path"
VOLUME_ATTR_MOUNT_TYPE = "mount_type"

# ── Dataset mount addressing ──────────────────────────────────────────────────
DATASET_MOUNT_SCHEME = "dataset://"

# Reserved tiered-locality key: "the node that holds this dataset's cache".
# Its name can not be changed by users of the tiered-locality config.
FLUID_NODE_LOCALITY_KEY = "fluid.io/node"


def is_true(labels: Optional[Mapping[str, str]], key: str) -> bool:
    """True when labels[key] is the string "true" (case-insensitive)."""
    if not labels:
        return False
    return (labels.get(key) or "").strip().lower() == LABEL_TRUE


def storage_capacity_label(namespace: str, name: str) -> str:
    """Label Fluid puts on a dataset's claim and on the nodes caching it."""
    return f"{STORAGE_CAPACITY_LABEL_PREFIX}{namespace}-{name}"


def dataset_sched_label(name: str) -> str:
    return DATASET_SCHED_LABEL_TEMPLATE.format(name=name)


def sched_required(labels: Optional[Mapping[str, str]], *dataset_names: str) -> bool:
    """
    True if any of `dataset_names` carries a sched=required override.

    Only the value "required" is recognised. There is intentionally no
    "preferred" value: a workload can tighten its locality, never loosen it.
    """
    if not labels:
        return False
    for name in dataset_names:
        value = labels.get(dataset_sched_label(name))
        if value is not None and value.strip().lower() == SCHED_REQUIRED:
            return True
    return False
