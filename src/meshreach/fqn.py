"""
FQN Decomposer - Split TSB fully-qualified names into their parts.

TSB resources are addressed by slash-delimited paths of alternating
key/value segments, e.g.:

    organizations/tetrate/tenants/t1/workspaces/w1/trafficgroups/g1

The helpers here walk those pairs to recover the hierarchy, either as
structured metadata or as the flat annotation mapping written onto
generated Sidecars.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple
import logging

logger = logging.getLogger(__name__)


# Hierarchy segment -> TrafficMeta attribute
META_KEYS = {
    "organizations": "organization",
    "tenants": "tenant",
    "workspaces": "workspace",
    "trafficgroups": "group",
}

# Hierarchy segment -> Sidecar annotation
ANNOTATION_KEYS = {
    "organizations": "tsb.tetrate.io/organization",
    "tenants": "tsb.tetrate.io/tenant",
    "workspaces": "tsb.tetrate.io/workspace",
    "trafficgroups": "tsb.tetrate.io/trafficGroup",
}


@dataclass
class TrafficMeta:
    """
    TSB object metadata for a resource living under a traffic group.

    Any field may be empty when the source FQN did not carry it.
    """
    organization: str = ""
    tenant: str = ""
    workspace: str = ""
    group: str = ""
    name: str = ""

    # Extra labels/annotations copied onto the emitted object
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        """Convert to the TSB metadata mapping, dropping empty fields."""
        data = {
            "name": self.name,
            "organization": self.organization,
            "tenant": self.tenant,
            "workspace": self.workspace,
            "group": self.group,
            "labels": dict(self.labels),
            "annotations": dict(self.annotations),
        }
        return {k: v for k, v in data.items() if v}


def segment_pairs(fqn: str) -> Iterator[Tuple[str, str]]:
    """
    Yield (key, value) pairs from an FQN.

    Keys sit at even offsets. A trailing key without a value is skipped.
    """
    parts = fqn.split("/") if fqn else []
    return zip(parts[0::2], parts[1::2])


def segment_values(fqn: str, key: str) -> List[str]:
    """Return every value that follows `key` in the FQN."""
    return [value for k, value in segment_pairs(fqn) if k == key]


def decompose_meta(fqn: str) -> TrafficMeta:
    """
    Decompose a traffic group FQN into TrafficMeta.

    Example:
        >>> decompose_meta("organizations/o/tenants/t/workspaces/w/trafficgroups/g")
        TrafficMeta(organization='o', tenant='t', workspace='w', group='g', ...)
    """
    meta = TrafficMeta()
    for key, value in segment_pairs(fqn):
        attr = META_KEYS.get(key)
        if attr:
            setattr(meta, attr, value)
    logger.debug(f"metadata for {fqn!r}: {meta}")
    return meta


def decompose_annotations(fqn: str) -> Dict[str, str]:
    """Decompose a traffic group FQN into tsb.tetrate.io/* annotations."""
    annotations: Dict[str, str] = {}
    for key, value in segment_pairs(fqn):
        annotation = ANNOTATION_KEYS.get(key)
        if annotation:
            annotations[annotation] = value
    logger.debug(f"annotations for {fqn!r}: {annotations}")
    return annotations


def setting_fqn(meta: TrafficMeta, name: str) -> str:
    """Compose the FQN of a TrafficSetting named `name` under `meta`'s group."""
    return "/".join([
        "organizations", meta.organization,
        "tenants", meta.tenant,
        "workspaces", meta.workspace,
        "trafficgroups", meta.group,
        "settings", name,
    ])
