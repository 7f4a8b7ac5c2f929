"""
Call Graph Builder - Normalize topology calls into namespace-level edges.

Joins the observed topology with the service registry, resolves the
namespaces on both ends of every call, and attaches the traffic group
that governs the calling service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, List, Optional
import logging

from rich.console import Console

from meshreach.topology.indexer import ServiceIndexer
from meshreach.topology.models import Service, TopologyResponse, TrafficGroup
from meshreach.topology.namespaces import resolve_namespaces

if TYPE_CHECKING:
    from meshreach.integration.base import ReachabilityAPIClient

logger = logging.getLogger(__name__)


class TrafficGroupLookupError(Exception):
    """Raised when the traffic group of a source service can't be looked up."""
    pass


@dataclass
class Call:
    """
    One namespace-level edge of the call graph.

    Calls without a source traffic group are kept in the graph but
    produce no policy.
    """
    source_service: Service
    source_namespaces: List[str]
    source_traffic_group: Optional[TrafficGroup]

    target_service: Service
    target_namespaces: List[str]

    @property
    def is_governed(self) -> bool:
        return self.source_traffic_group is not None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        tg = self.source_traffic_group
        return {
            "source": self.source_service.fqn,
            "source_namespaces": list(self.source_namespaces),
            "source_traffic_group": tg.fqn if tg else None,
            "config_mode": tg.config_mode if tg else None,
            "target": self.target_service.fqn,
            "target_namespaces": list(self.target_namespaces),
        }


@dataclass
class CallGraph:
    """Ordered calls derived from one topology snapshot; duplicates allowed."""
    calls: List[Call] = field(default_factory=list)

    def add(self, call: Call) -> None:
        self.calls.append(call)

    @property
    def governed_calls(self) -> List[Call]:
        return [c for c in self.calls if c.is_governed]

    def summary(self) -> dict:
        """Get graph summary statistics."""
        return {
            "n_calls": len(self.calls),
            "n_governed": len(self.governed_calls),
            "n_ungoverned": len(self.calls) - len(self.governed_calls),
        }

    def __iter__(self) -> Iterator[Call]:
        return iter(self.calls)

    def __len__(self) -> int:
        return len(self.calls)


class CallGraphBuilder:
    """
    Build a CallGraph from a topology snapshot and the service list.

    An edge whose endpoints don't resolve to services is skipped. A
    service without a traffic group is reported on stderr and kept with
    a null group. A failed traffic group lookup aborts the whole build.

    Example:
        >>> builder = CallGraphBuilder(client)
        >>> graph = builder.build(topology, services)
        >>> len(graph)
        12
    """

    def __init__(self, client: ReachabilityAPIClient, console: Optional[Console] = None):
        """
        Initialize the builder.

        Args:
            client: Backend used for traffic group lookups
            console: Console for user-facing diagnostics (stderr by default)
        """
        self.client = client
        self.console = console or Console(stderr=True)

    def build(self, topology: TopologyResponse, services: List[Service]) -> CallGraph:
        """
        Normalize the topology into a CallGraph.

        Raises:
            TrafficGroupLookupError: If any traffic group lookup fails; no
                partial graph is returned.
        """
        indexer = ServiceIndexer(services, topology.nodes)
        if topology.nodes and not len(indexer):
            logger.warning(
                f"none of the {len(topology.nodes)} topology nodes matched a registered "
                f"service ({len(services)} services), no calls will be resolved"
            )
        graph = CallGraph()

        for edge in topology.calls:
            logger.debug(f"processing call {edge.id}")

            source = indexer.resolve(edge.source_node_id)
            if source is None:
                logger.debug(f"no service for key {edge.source_node_id}")
                continue
            target = indexer.resolve(edge.target_node_id)
            if target is None:
                logger.debug(f"no service for key {edge.target_node_id}")
                continue
            logger.debug(f"computed source => target: {source.fqn} => {target.fqn}")

            call = Call(
                source_service=source,
                source_namespaces=resolve_namespaces(source),
                source_traffic_group=self._lookup_group(source),
                target_service=target,
                target_namespaces=resolve_namespaces(target),
            )
            graph.add(call)

        logger.debug(f"graph built: {graph.summary()}")
        return graph

    def _lookup_group(self, source: Service) -> Optional[TrafficGroup]:
        try:
            group = self.client.lookup_traffic_group(source)
        except Exception as e:
            logger.debug(f"error getting traffic group for {source.fqn}: {e}")
            raise TrafficGroupLookupError(
                f"failed to look up traffic group for {source.fqn!r}: {e}"
            ) from e

        if group is None:
            self.console.print(
                f'no trafficgroup found for source service "{source.fqn}", skipping...',
                markup=False,
                highlight=False,
            )
        else:
            logger.debug(f"source {source.fqn} governed by {group.describe()}")
        return group


def build_call_graph(
    client: ReachabilityAPIClient,
    topology: TopologyResponse,
    services: List[Service],
    console: Optional[Console] = None,
) -> CallGraph:
    """
    Convenience function to build a call graph.

    Args:
        client: Backend used for traffic group lookups
        topology: Topology snapshot
        services: TSB service list
        console: Optional console for diagnostics

    Returns:
        CallGraph in topology edge order
    """
    return CallGraphBuilder(client, console=console).build(topology, services)
