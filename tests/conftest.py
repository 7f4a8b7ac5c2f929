"""
Shared fixtures: an in-memory TSB backend and topology builders.
"""

from typing import Dict, List, Optional

import pytest

from meshreach.policy.objects import TrafficSetting
from meshreach.topology.models import Service, TopologyResponse, TrafficGroup


ORG_FQN = "organizations/tetrate/tenants/t1/workspaces/w1"


class FakeClient:
    """In-memory ReachabilityAPIClient recording every call it receives."""

    def __init__(
        self,
        topology: Optional[TopologyResponse] = None,
        services: Optional[List[Service]] = None,
        groups: Optional[Dict[str, TrafficGroup]] = None,
        settings: Optional[Dict[str, TrafficSetting]] = None,
        failing_lookups: Optional[Dict[str, Exception]] = None,
        failing_settings: Optional[Dict[str, Exception]] = None,
    ):
        self.topology = topology or TopologyResponse()
        self.services = services or []
        self.groups = groups or {}
        self.settings = settings or {}
        self.failing_lookups = failing_lookups or {}
        self.failing_settings = failing_settings or {}

        self.lookups: List[str] = []
        self.setting_fetches: List[str] = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True

    def fetch_topology(self, start, end):
        return self.topology

    def fetch_services(self):
        return list(self.services)

    def lookup_traffic_group(self, service):
        self.lookups.append(service.fqn)
        if service.fqn in self.failing_lookups:
            raise self.failing_lookups[service.fqn]
        return self.groups.get(service.fqn)

    def fetch_traffic_setting(self, group_fqn):
        self.setting_fetches.append(group_fqn)
        if group_fqn in self.failing_settings:
            raise self.failing_settings[group_fqn]
        setting = self.settings.get(group_fqn)
        # Hand out a copy, as a real API would
        return setting.model_copy(deep=True) if setting else None


def make_service(name: str, *namespaces: str, keys: Optional[List[str]] = None) -> Service:
    """A TSB service with one deployment per namespace."""
    return Service.model_validate({
        "fqn": f"organizations/tetrate/services/{name}",
        "displayName": name,
        "metrics": [{"aggregationKey": k} for k in (keys or [name])],
        "serviceDeployments": [
            {
                "fqn": f"organizations/tetrate/clusters/c1/namespaces/{ns}/servicedeployments/{name}",
                "source": "KUBERNETES",
            }
            for ns in namespaces
        ],
    })


def make_group(name: str, mode: str = "DIRECT") -> TrafficGroup:
    return TrafficGroup.model_validate({
        "fqn": f"{ORG_FQN}/trafficgroups/{name}",
        "configMode": mode,
    })


def make_topology(nodes: Dict[str, str], edges: List[tuple]) -> TopologyResponse:
    """Topology from {node id: aggregation key} and (source id, target id) edges."""
    return TopologyResponse.model_validate({
        "nodes": [{"id": i, "name": key, "type": "Kubernetes", "isReal": True} for i, key in nodes.items()],
        "calls": [
            {"id": f"{src}-{dst}-{n}", "source": src, "target": dst}
            for n, (src, dst) in enumerate(edges)
        ],
    })


@pytest.fixture
def fake_client():
    """Factory for FakeClient instances."""
    return FakeClient


@pytest.fixture
def service():
    return make_service


@pytest.fixture
def group():
    return make_group


@pytest.fixture
def topology():
    return make_topology


@pytest.fixture
def clean_env(monkeypatch):
    """Environment without any MESHREACH_* settings."""
    for var in (
        "MESHREACH_SERVER",
        "MESHREACH_USERNAME",
        "MESHREACH_PASSWORD",
        "MESHREACH_ORG",
        "MESHREACH_TIMEOUT",
        "MESHREACH_DEDUP_SCOPE",
        "MESHREACH_INSECURE",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch
