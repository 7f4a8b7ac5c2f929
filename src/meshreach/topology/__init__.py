"""
meshreach Topology Module

Correlates the observed call topology with the TSB service registry.

Key components:
- ServiceIndexer: topology node -> Service
- resolve_namespaces: Service -> deployment namespaces
- CallGraphBuilder: topology calls -> namespace-level Calls
"""

from meshreach.topology.models import (
    TopologyNode,
    TopologyCallEdge,
    TopologyResponse,
    Service,
    ServiceDeployment,
    TrafficGroup,
)
from meshreach.topology.indexer import ServiceIndexer
from meshreach.topology.namespaces import resolve_namespaces
from meshreach.topology.graph import (
    Call,
    CallGraph,
    CallGraphBuilder,
    TrafficGroupLookupError,
    build_call_graph,
)

__all__ = [
    "TopologyNode",
    "TopologyCallEdge",
    "TopologyResponse",
    "Service",
    "ServiceDeployment",
    "TrafficGroup",
    "ServiceIndexer",
    "resolve_namespaces",
    "Call",
    "CallGraph",
    "CallGraphBuilder",
    "TrafficGroupLookupError",
    "build_call_graph",
]
