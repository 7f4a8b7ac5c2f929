"""
Service Indexer - Map topology nodes to registered services.

Resolution chain:
  node id -> aggregation key -> Service

Topology nodes and TSB services share only the metric aggregation key,
so both sides are indexed by it and joined.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional
import logging

from meshreach.topology.models import Service, TopologyNode

logger = logging.getLogger(__name__)


class ServiceIndexer:
    """
    Resolve topology node identifiers to services.

    Example:
        >>> indexer = ServiceIndexer(services, topology.nodes)
        >>> indexer.resolve("bm9kZS0x.1")
        Service(fqn='organizations/tetrate/services/reviews', ...)
    """

    def __init__(self, services: Iterable[Service], nodes: Iterable[TopologyNode]):
        """
        Build the lookup tables.

        Args:
            services: Full TSB service list
            nodes: Topology nodes for the queried window
        """
        self._services_by_key: Dict[str, Service] = {}
        self._key_by_node_id: Dict[str, str] = {}
        self._services_by_node_id: Dict[str, Service] = {}

        self._build_lookups(services, nodes)

    def _build_lookups(self, services: Iterable[Service], nodes: Iterable[TopologyNode]) -> None:
        # Aggregation key -> Service; a key shared by two services keeps the last one
        for svc in services:
            for key in svc.aggregation_keys:
                logger.debug(f"service {key!r} has FQN {svc.fqn!r}")
                self._services_by_key[key] = svc

        # Node id -> aggregation key
        for node in nodes:
            logger.debug(f"node ID {node.id!r} belongs to {node.aggregation_key!r}")
            self._key_by_node_id[node.id] = node.aggregation_key

        # Node id -> Service
        for node_id, key in self._key_by_node_id.items():
            svc = self._services_by_key.get(key)
            if svc is None:
                logger.debug(f"no service for key {key!r}")
                continue
            self._services_by_node_id[node_id] = svc
            logger.debug(f"id {node_id!r} maps to service {svc.fqn!r}")

        logger.debug(
            f"indexed {len(self._services_by_key)} aggregation keys, "
            f"{len(self._services_by_node_id)}/{len(self._key_by_node_id)} nodes resolved"
        )

    def resolve(self, node_id: str) -> Optional[Service]:
        """Return the service behind a topology node, or None if unknown."""
        return self._services_by_node_id.get(node_id)

    def __len__(self) -> int:
        return len(self._services_by_node_id)
