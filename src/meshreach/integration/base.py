"""
Collaborator contract consumed by the reachability pipeline.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, List, Optional, Protocol

if TYPE_CHECKING:
    from meshreach.policy.objects import TrafficSetting
    from meshreach.topology.models import Service, TopologyResponse, TrafficGroup


class ReachabilityAPIClient(Protocol):
    """Protocol for the backends the pipeline reads from."""

    def fetch_topology(self, start: date, end: date) -> TopologyResponse:
        """
        Return the observed service topology for [start, end].

        Nodes are normalized to TSB services through the aggregated metric
        names each TSB Service exposes.
        """
        ...

    def fetch_services(self) -> List[Service]:
        """Return every service registered in the organization."""
        ...

    def lookup_traffic_group(self, service: Service) -> Optional[TrafficGroup]:
        """Return the traffic group governing `service`, or None if ungoverned."""
        ...

    def fetch_traffic_setting(self, group_fqn: str) -> Optional[TrafficSetting]:
        """Return the existing TrafficSetting of a traffic group, or None."""
        ...
