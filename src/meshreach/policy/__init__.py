"""
meshreach Policy Module

Reachability policy generation from the call graph.

Key components:
- PolicyGenerator: CallGraph -> Sidecar / TrafficSetting objects
- SidecarPolicy, TrafficSettingPolicy: accumulating documents
- render_yaml: manifest output
"""

from meshreach.policy.objects import (
    BASE_HOSTS,
    PolicyObject,
    PolicySerializationError,
    ReachabilitySettings,
    SidecarPolicy,
    TrafficSetting,
    TrafficSettingPolicy,
)
from meshreach.policy.generator import (
    DedupScope,
    GenerationState,
    PolicyGenerator,
    generate_policies,
)
from meshreach.policy.exporter import render_yaml, write_yaml

__all__ = [
    # Objects
    "BASE_HOSTS",
    "PolicyObject",
    "PolicySerializationError",
    "ReachabilitySettings",
    "SidecarPolicy",
    "TrafficSetting",
    "TrafficSettingPolicy",
    # Generation
    "DedupScope",
    "GenerationState",
    "PolicyGenerator",
    "generate_policies",
    # Export
    "render_yaml",
    "write_yaml",
]
