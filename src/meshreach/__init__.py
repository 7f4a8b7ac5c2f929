"""
meshreach - Reachability policy from observed service topology

Derives Istio Sidecar egress and TSB TrafficSetting reachability from the
calls services actually made.

Modules:
- fqn: TSB fully-qualified name decomposition
- topology: topology/registry models, service indexing, call graph
- policy: policy generation and YAML export
- integration: TSB API client
"""

__version__ = "0.1.0"

# Re-export key classes for convenience
from meshreach.fqn import (
    TrafficMeta,
    decompose_annotations,
    decompose_meta,
    segment_values,
)
from meshreach.topology import (
    TopologyNode,
    TopologyCallEdge,
    TopologyResponse,
    Service,
    ServiceDeployment,
    TrafficGroup,
    ServiceIndexer,
    resolve_namespaces,
    Call,
    CallGraph,
    CallGraphBuilder,
    TrafficGroupLookupError,
    build_call_graph,
)
from meshreach.policy import (
    PolicyObject,
    SidecarPolicy,
    TrafficSetting,
    TrafficSettingPolicy,
    PolicySerializationError,
    DedupScope,
    PolicyGenerator,
    generate_policies,
    render_yaml,
)
from meshreach.integration import (
    ReachabilityAPIClient,
    TSBClient,
    TSBAPIError,
)

__all__ = [
    # Version
    "__version__",
    # FQN
    "TrafficMeta",
    "decompose_annotations",
    "decompose_meta",
    "segment_values",
    # Topology
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
    # Policy
    "PolicyObject",
    "SidecarPolicy",
    "TrafficSetting",
    "TrafficSettingPolicy",
    "PolicySerializationError",
    "DedupScope",
    "PolicyGenerator",
    "generate_policies",
    "render_yaml",
    # Integration
    "ReachabilityAPIClient",
    "TSBClient",
    "TSBAPIError",
]
