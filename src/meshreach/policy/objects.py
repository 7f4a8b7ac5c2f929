"""
Policy Objects - Sidecar and TrafficSetting reachability documents.

Two kinds of document are produced:
- SidecarPolicy: Istio Sidecar egress for a DIRECT mode namespace
- TrafficSettingPolicy: TSB TrafficSetting reachability for a bridged group

Both are converted to the same PolicyObject envelope
(apiVersion/kind/metadata/spec) for output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
import logging

from pydantic import BaseModel, ConfigDict, Field

from meshreach.fqn import TrafficMeta

logger = logging.getLogger(__name__)


ISTIO_NETWORKING_API = "networking.istio.io/v1beta1"
SIDECAR_KIND = "Sidecar"
TRAFFIC_API = "traffic.tsb.tetrate.io/v2"
TRAFFIC_SETTING_KIND = "TrafficSetting"

SIDECAR_NAME = "reachability-sidecar"
DEFAULT_SETTING_NAME = "default"

# Always reachable, whatever the observed topology says
BASE_HOSTS = ("istio-system/*", "xcp-multicluster/*")

REACHABILITY_UNSET = "UNSET"
REACHABILITY_CUSTOM = "CUSTOM"


class PolicySerializationError(Exception):
    """Raised when a policy spec can't be serialized."""
    pass


def namespace_host(namespace: str) -> str:
    """Host entry allowing every service of a namespace."""
    return f"{namespace}/*"


# ---------------------------------------------------------------------------
# Spec payloads
# ---------------------------------------------------------------------------

class EgressListener(BaseModel):
    hosts: List[str] = Field(default_factory=list)


class SidecarSpec(BaseModel):
    """Istio Sidecar spec; only the egress listener is generated."""
    egress: List[EgressListener] = Field(default_factory=list)


class ReachabilitySettings(BaseModel):
    """TSB reachability block; unknown fields from the server are kept."""
    model_config = ConfigDict(extra="allow")

    mode: Optional[str] = None
    hosts: List[str] = Field(default_factory=list)

    @property
    def is_mode_set(self) -> bool:
        return bool(self.mode) and self.mode != REACHABILITY_UNSET


class TrafficSetting(BaseModel):
    """
    TSB TrafficSetting as returned by the API.

    Fields this tool doesn't touch (resilience, egress, etag, ...) are kept
    as extras so a merged setting round-trips intact.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    fqn: str = ""
    display_name: Optional[str] = Field(default=None, alias="displayName")
    reachability: Optional[ReachabilitySettings] = None


def serialize_spec(payload: BaseModel) -> Dict[str, Any]:
    """
    Serialize a spec payload to a JSON-compatible mapping.

    Raises:
        PolicySerializationError: If the payload can't be serialized
    """
    try:
        return payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    except (TypeError, ValueError) as e:
        raise PolicySerializationError(
            f"failed to serialize {type(payload).__name__} spec: {e}"
        ) from e


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

@dataclass
class ObjectMeta:
    """Kubernetes style metadata for namespaced Istio objects."""
    name: str
    namespace: str
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        """Convert to dictionary, dropping empty fields."""
        data = {
            "name": self.name,
            "namespace": self.namespace,
            "labels": dict(self.labels),
            "annotations": dict(self.annotations),
        }
        return {k: v for k, v in data.items() if v}


@dataclass
class PolicyObject:
    """Generic policy envelope handed to the output layer."""
    api_version: str
    kind: str
    metadata: Dict[str, Any]
    spec: Dict[str, Any]

    def to_dict(self) -> Dict:
        """Convert to dictionary in manifest key order."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata,
            "spec": self.spec,
        }


# ---------------------------------------------------------------------------
# Accumulating documents
# ---------------------------------------------------------------------------

@dataclass
class SidecarPolicy:
    """
    Sidecar egress for one source namespace (DIRECT mode).

    Hosts start from BASE_HOSTS; destinations are appended as they are
    discovered.
    """
    namespace: str
    annotations: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    name: str = SIDECAR_NAME
    spec: SidecarSpec = field(
        default_factory=lambda: SidecarSpec(egress=[EgressListener(hosts=list(BASE_HOSTS))])
    )

    @property
    def hosts(self) -> List[str]:
        return self.spec.egress[0].hosts

    def add_host(self, host: str) -> None:
        self.spec.egress[0].hosts.append(host)

    def to_object(self) -> PolicyObject:
        """Wrap into a PolicyObject."""
        meta = ObjectMeta(
            name=self.name,
            namespace=self.namespace,
            labels=self.labels,
            annotations=self.annotations,
        )
        return PolicyObject(
            api_version=ISTIO_NETWORKING_API,
            kind=SIDECAR_KIND,
            metadata=meta.to_dict(),
            spec=serialize_spec(self.spec),
        )


@dataclass
class TrafficSettingPolicy:
    """
    Reachability TrafficSetting for one traffic group (bridged mode).

    Wraps either the setting already stored in TSB or a synthesized
    default one, plus the metadata it will be emitted with.
    """
    group_fqn: str
    meta: TrafficMeta
    setting: TrafficSetting
    synthesized: bool = False

    @classmethod
    def synthesize(cls, group_fqn: str, meta: TrafficMeta, fqn: str) -> "TrafficSettingPolicy":
        """
        Create a default reachability setting seeded with BASE_HOSTS.

        The mode is set to CUSTOM; a setting left in UNSET mode would carry
        the hosts without TSB enforcing them.
        """
        setting = TrafficSetting(
            fqn=fqn,
            reachability=ReachabilitySettings(
                mode=REACHABILITY_CUSTOM,
                hosts=list(BASE_HOSTS),
            ),
        )
        return cls(group_fqn=group_fqn, meta=meta, setting=setting, synthesized=True)

    @property
    def reachability(self) -> ReachabilitySettings:
        if self.setting.reachability is None:
            self.setting.reachability = ReachabilitySettings()
        return self.setting.reachability

    @property
    def hosts(self) -> List[str]:
        return self.reachability.hosts

    def has_host(self, host: str) -> bool:
        return host in self.reachability.hosts

    def add_host(self, host: str) -> None:
        self.reachability.hosts.append(host)

    def to_object(self) -> PolicyObject:
        """Wrap into a PolicyObject."""
        return PolicyObject(
            api_version=TRAFFIC_API,
            kind=TRAFFIC_SETTING_KIND,
            metadata=self.meta.to_dict(),
            spec=serialize_spec(self.setting),
        )


PolicyDocument = Union[SidecarPolicy, TrafficSettingPolicy]
