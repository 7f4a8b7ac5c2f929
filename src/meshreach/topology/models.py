"""
Topology and registry models.

Wire models for the observed call topology (SkyWalking nodes and calls)
and the TSB service registry. Field aliases follow the JSON returned by
the TSB APIs, so payloads can be validated directly:

    >>> Service.model_validate({"fqn": "...", "metrics": [{"aggregationKey": "k"}]})
"""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


DIRECT_MODE = "DIRECT"


class WireModel(BaseModel):
    """Base for API payloads: accept both aliases and field names."""
    model_config = ConfigDict(populate_by_name=True)


class TopologyNode(WireModel):
    """A vertex of the observed call graph."""
    id: str
    # SkyWalking reports the service metric name as the node name
    aggregation_key: str = Field(default="", alias="name")


class TopologyCallEdge(WireModel):
    """One observed directed call between two topology nodes."""
    id: str = ""
    source_node_id: str = Field(alias="source")
    target_node_id: str = Field(alias="target")


class TopologyResponse(WireModel):
    """Global topology for a time window."""
    nodes: List[TopologyNode] = Field(default_factory=list)
    calls: List[TopologyCallEdge] = Field(default_factory=list)

    @field_validator("nodes", "calls", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class ServiceMetric(WireModel):
    aggregation_key: str = Field(default="", alias="aggregationKey")


class ServiceDeployment(WireModel):
    """A deployment record; its FQN carries the namespace it runs in."""
    fqn: str = ""
    source: str = ""


class Service(WireModel):
    """
    A service registered in TSB.

    A service can expose several metric sources, each with its own
    aggregation key, and be deployed in several namespaces.
    """
    fqn: str
    display_name: str = Field(default="", alias="displayName")
    metrics: List[ServiceMetric] = Field(default_factory=list)
    canonical_name: str = Field(default="", alias="canonicalName")
    spiffe_ids: List[str] = Field(default_factory=list, alias="spiffeIds")
    deployments: List[ServiceDeployment] = Field(
        default_factory=list, alias="serviceDeployments"
    )

    @field_validator("metrics", "spiffe_ids", "deployments", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def aggregation_keys(self) -> List[str]:
        """Aggregation keys of every metric source, in declaration order."""
        return [m.aggregation_key for m in self.metrics if m.aggregation_key]


class TrafficGroup(WireModel):
    """
    The traffic group governing a service.

    `config_mode` decides how reachability is authored: DIRECT groups get
    Istio Sidecars, any other mode (BRIDGED) gets a TSB TrafficSetting.
    """
    fqn: str
    config_mode: str = Field(default="", alias="configMode")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_direct(self) -> bool:
        return self.config_mode == DIRECT_MODE

    def describe(self) -> str:
        return f"{self.fqn} ({self.config_mode or 'UNSET'})"
