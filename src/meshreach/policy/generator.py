"""
Policy Generator - Turn a CallGraph into reachability policy objects.

Each governed call is dispatched on its source traffic group's config
mode:
- DIRECT: extend the Istio Sidecar egress of every source namespace
- anything else (bridged): merge into the TSB TrafficSetting of the group,
  fetched from TSB on first use or synthesized when none exists
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Set
import logging

from meshreach.fqn import decompose_annotations, decompose_meta, segment_values, setting_fqn
from meshreach.policy.objects import (
    DEFAULT_SETTING_NAME,
    REACHABILITY_CUSTOM,
    PolicyDocument,
    PolicyObject,
    SidecarPolicy,
    TrafficSettingPolicy,
    namespace_host,
)
from meshreach.topology.graph import Call, CallGraph

if TYPE_CHECKING:
    from meshreach.integration.base import ReachabilityAPIClient

logger = logging.getLogger(__name__)


class DedupScope(Enum):
    """
    How "already seen" destinations are tracked.

    SHARED keeps one record per source namespace for both modes, so a
    destination merged for a DIRECT group is skipped for a bridged group
    in the same namespace. PER_MODE tracks each mode separately.
    """
    SHARED = "shared"
    PER_MODE = "per-mode"


DIRECT_DOMAIN = "direct"
BRIDGED_DOMAIN = "bridged"


@dataclass
class GenerationState:
    """Accumulated state for one generation pass."""
    dedup_scope: DedupScope = DedupScope.SHARED

    # dedup domain -> source namespace -> destination namespaces merged
    seen: Dict[str, Dict[str, Set[str]]] = field(
        default_factory=lambda: defaultdict(lambda: defaultdict(set))
    )
    # source namespace -> Sidecar
    sidecars: Dict[str, SidecarPolicy] = field(default_factory=dict)
    # group FQN -> TrafficSetting
    settings: Dict[str, TrafficSettingPolicy] = field(default_factory=dict)

    def _domain(self, mode_domain: str) -> Dict[str, Set[str]]:
        if self.dedup_scope is DedupScope.PER_MODE:
            return self.seen[mode_domain]
        return self.seen[DIRECT_DOMAIN]

    def mark_seen(self, mode_domain: str, src_ns: str, dest_ns: str) -> bool:
        """Record src -> dest; return False if it was already recorded."""
        seen = self._domain(mode_domain)[src_ns]
        if dest_ns in seen:
            logger.debug(f"dest {dest_ns!r} already exists for ns {src_ns!r}")
            return False
        seen.add(dest_ns)
        logger.debug(f"first time found ns {dest_ns!r} for src {src_ns!r}")
        return True

    @property
    def documents(self) -> List[PolicyDocument]:
        """Sidecars first, then TrafficSettings, each in discovery order."""
        return [*self.sidecars.values(), *self.settings.values()]


class PolicyGenerator:
    """
    Generate Sidecar / TrafficSetting objects from a CallGraph.

    Example:
        >>> generator = PolicyGenerator(client)
        >>> objects = generator.generate(graph)
        >>> [o.kind for o in objects]
        ['Sidecar', 'TrafficSetting']
    """

    def __init__(self, client: ReachabilityAPIClient, dedup_scope: DedupScope = DedupScope.SHARED):
        """
        Initialize the generator.

        Args:
            client: Backend used to fetch existing TrafficSettings
            dedup_scope: Whether DIRECT and bridged groups share dedup state
        """
        self.client = client
        self.dedup_scope = DedupScope(dedup_scope)

    def generate(self, graph: CallGraph) -> List[PolicyObject]:
        """
        Generate policy objects for every governed call of the graph.

        Raises:
            PolicySerializationError: If a spec can't be serialized
            Exception: Whatever the client raises while fetching settings
        """
        logger.debug("generating sidecars")
        state = GenerationState(dedup_scope=self.dedup_scope)

        for call in graph:
            logger.debug(f"processing call: {call.to_dict()}")
            self.process_call(call, state)

        results = [doc.to_object() for doc in state.documents]
        synthesized = sum(1 for policy in state.settings.values() if policy.synthesized)
        logger.debug(
            f"total results: {len(results)} "
            f"({len(state.sidecars)} sidecars, {len(state.settings)} traffic settings, "
            f"{synthesized} of them synthesized)"
        )
        return results

    def process_call(self, call: Call, state: GenerationState) -> None:
        """Merge one call into the accumulated state."""
        group = call.source_traffic_group
        if group is None:
            return

        if group.is_direct:
            self._merge_direct(call, state)
        else:
            self._merge_bridged(call, state)

    def _merge_direct(self, call: Call, state: GenerationState) -> None:
        annotations = decompose_annotations(call.source_traffic_group.fqn)

        for ns in call.source_namespaces:
            logger.debug(f"source namespace: {ns}")
            sidecar = state.sidecars.get(ns)
            if sidecar is None:
                sidecar = SidecarPolicy(namespace=ns, annotations=dict(annotations))
                state.sidecars[ns] = sidecar
                logger.debug(f"new sidecar for namespace {ns}: {sidecar.hosts}")

            for dest_ns in call.target_namespaces:
                if state.mark_seen(DIRECT_DOMAIN, ns, dest_ns):
                    sidecar.add_host(namespace_host(dest_ns))

    def _merge_bridged(self, call: Call, state: GenerationState) -> None:
        group_fqn = call.source_traffic_group.fqn
        if not call.source_namespaces:
            logger.debug(f"call from {call.source_service.fqn} has no source namespace, skipping")
            return

        policy = state.settings.get(group_fqn)
        if policy is None:
            policy = self._load_setting(group_fqn)
            state.settings[group_fqn] = policy

        for ns in call.source_namespaces:
            logger.debug(f"source namespace: {ns}")
            for dest_ns in call.target_namespaces:
                if not state.mark_seen(BRIDGED_DOMAIN, ns, dest_ns):
                    continue

                reach = policy.reachability
                if reach.is_mode_set and reach.mode != REACHABILITY_CUSTOM:
                    logger.debug(
                        f"traffic group {group_fqn!r} has reachability mode {reach.mode}, "
                        f"not {REACHABILITY_CUSTOM}; hosts are merged but won't take effect"
                    )

                host = namespace_host(dest_ns)
                if not policy.has_host(host):
                    policy.add_host(host)

    def _load_setting(self, group_fqn: str) -> TrafficSettingPolicy:
        meta = decompose_meta(group_fqn)
        setting = self.client.fetch_traffic_setting(group_fqn)

        if setting is None:
            # No traffic setting for the traffic group yet
            meta.name = DEFAULT_SETTING_NAME
            policy = TrafficSettingPolicy.synthesize(
                group_fqn, meta, setting_fqn(meta, DEFAULT_SETTING_NAME)
            )
            logger.debug(f"synthesized settings for group {group_fqn!r}: {policy.setting.fqn}")
            return policy

        names = segment_values(setting.fqn, "settings")
        meta.name = names[0] if names else DEFAULT_SETTING_NAME
        logger.debug(f"got settings for group {group_fqn!r}: {setting.fqn}")
        return TrafficSettingPolicy(group_fqn=group_fqn, meta=meta, setting=setting)


def generate_policies(
    client: ReachabilityAPIClient,
    graph: CallGraph,
    dedup_scope: DedupScope = DedupScope.SHARED,
) -> List[PolicyObject]:
    """
    Convenience function to generate policy objects.

    Args:
        client: Backend used to fetch existing TrafficSettings
        graph: CallGraph to generate from
        dedup_scope: Dedup scoping across config modes

    Returns:
        PolicyObjects, Sidecars first
    """
    return PolicyGenerator(client, dedup_scope=dedup_scope).generate(graph)
