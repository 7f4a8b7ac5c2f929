"""
End-to-end reachability pipeline tests.

Runs topology -> call graph -> policy objects -> YAML against an
in-memory backend and checks the rendered documents.
"""

import io

import pytest
import yaml
from rich.console import Console

from meshreach.integration.base import ReachabilityAPIClient
from meshreach.policy.exporter import render_yaml
from meshreach.policy.generator import DedupScope, generate_policies
from meshreach.policy.objects import ReachabilitySettings, TrafficSetting
from meshreach.topology.graph import TrafficGroupLookupError, build_call_graph


GROUP_ANNOTATIONS = {
    "tsb.tetrate.io/organization": "tetrate",
    "tsb.tetrate.io/tenant": "t1",
    "tsb.tetrate.io/workspace": "w1",
}


def run_pipeline(client, dedup_scope=DedupScope.SHARED):
    """Build policies from the client's topology and parse the YAML back."""
    err = io.StringIO()
    graph = build_call_graph(
        client,
        client.fetch_topology(None, None),
        client.fetch_services(),
        console=Console(file=err, width=200),
    )
    objects = generate_policies(client, graph, dedup_scope=dedup_scope)
    rendered = render_yaml(objects)
    return list(yaml.safe_load_all(rendered)) if rendered else [], err.getvalue()


class TestDirectPipeline:
    """DIRECT traffic groups end to end."""

    def test_single_call(self, fake_client, service, group, topology):
        """Test svcA -> svcB under a DIRECT group yields one Sidecar."""
        a, b = service("svcA", "ns-a"), service("svcB", "ns-b")
        g1 = group("g1")
        client = fake_client(
            topology=topology({"n1": "svcA", "n2": "svcB"}, [("n1", "n2")]),
            services=[a, b],
            groups={a.fqn: g1},
        )

        docs, _ = run_pipeline(client)

        assert docs == [{
            "apiVersion": "networking.istio.io/v1beta1",
            "kind": "Sidecar",
            "metadata": {
                "name": "reachability-sidecar",
                "namespace": "ns-a",
                "annotations": {**GROUP_ANNOTATIONS, "tsb.tetrate.io/trafficGroup": "g1"},
            },
            "spec": {"egress": [{"hosts": ["istio-system/*", "xcp-multicluster/*", "ns-b/*"]}]},
        }]
        assert client.setting_fetches == []

    def test_duplicate_edge_no_change(self, fake_client, service, group, topology):
        """Test repeating an observed call doesn't change the output."""
        a, b = service("svcA", "ns-a"), service("svcB", "ns-b")
        nodes = {"n1": "svcA", "n2": "svcB"}

        once = fake_client(topology=topology(nodes, [("n1", "n2")]),
                           services=[a, b], groups={a.fqn: group("g1")})
        twice = fake_client(topology=topology(nodes, [("n1", "n2"), ("n1", "n2")]),
                            services=[a, b], groups={a.fqn: group("g1")})

        assert run_pipeline(once)[0] == run_pipeline(twice)[0]

    def test_fan_out(self, fake_client, service, group, topology):
        """Test every source namespace gets its own Sidecar with every destination."""
        a = service("svcA", "ns-a1", "ns-a2")
        b = service("svcB", "ns-b")
        c = service("svcC", "ns-c")
        client = fake_client(
            topology=topology({"n1": "svcA", "n2": "svcB", "n3": "svcC"}, [("n1", "n2"), ("n1", "n3")]),
            services=[a, b, c],
            groups={a.fqn: group("g1")},
        )

        docs, _ = run_pipeline(client)

        assert [d["metadata"]["namespace"] for d in docs] == ["ns-a1", "ns-a2"]
        for doc in docs:
            assert doc["spec"]["egress"][0]["hosts"] == [
                "istio-system/*", "xcp-multicluster/*", "ns-b/*", "ns-c/*",
            ]

    def test_ungoverned_services(self, fake_client, service, topology):
        """Test services without a traffic group produce no policy."""
        a, b = service("svcA", "ns-a"), service("svcB", "ns-b")
        client = fake_client(
            topology=topology({"n1": "svcA", "n2": "svcB"}, [("n1", "n2"), ("n2", "n1")]),
            services=[a, b],
        )

        docs, err = run_pipeline(client)

        assert docs == []
        assert f'no trafficgroup found for source service "{a.fqn}", skipping...' in err
        assert f'no trafficgroup found for source service "{b.fqn}", skipping...' in err


class TestBridgedPipeline:
    """Bridged traffic groups end to end."""

    def test_synthesized_setting(self, fake_client, service, group, topology):
        """Test a group without settings gets a default CUSTOM TrafficSetting."""
        a, b = service("svcA", "ns-a"), service("svcB", "ns-b")
        g2 = group("g2", "BRIDGED")
        client = fake_client(
            topology=topology({"n1": "svcA", "n2": "svcB"}, [("n1", "n2"), ("n1", "n2")]),
            services=[a, b],
            groups={a.fqn: g2},
        )

        docs, _ = run_pipeline(client)

        assert docs == [{
            "apiVersion": "traffic.tsb.tetrate.io/v2",
            "kind": "TrafficSetting",
            "metadata": {
                "organization": "tetrate",
                "tenant": "t1",
                "workspace": "w1",
                "group": "g2",
                "name": "default",
            },
            "spec": {
                "fqn": f"{g2.fqn}/settings/default",
                "reachability": {
                    "mode": "CUSTOM",
                    "hosts": ["istio-system/*", "xcp-multicluster/*", "ns-b/*"],
                },
            },
        }]
        # Fetched once per group
        assert client.setting_fetches == [g2.fqn]

    def test_existing_setting_merged(self, fake_client, service, group, topology):
        """Test hosts are appended to a stored setting, keeping its other fields."""
        a, b, c = service("svcA", "ns-a"), service("svcB", "ns-b"), service("svcC", "ns-c")
        g2 = group("g2", "BRIDGED")
        stored = TrafficSetting.model_validate({
            "fqn": f"{g2.fqn}/settings/reach",
            "displayName": "reach",
            "etag": '"abc"',
            "resilience": {"circuitBreakerSensitivity": "LOW"},
            "reachability": {"mode": "CUSTOM", "hosts": ["ns-b/*"]},
        })
        client = fake_client(
            topology=topology({"n1": "svcA", "n2": "svcB", "n3": "svcC"}, [("n1", "n2"), ("n1", "n3")]),
            services=[a, b, c],
            groups={a.fqn: g2},
            settings={g2.fqn: stored},
        )

        docs, _ = run_pipeline(client)

        assert len(docs) == 1
        assert docs[0]["metadata"]["name"] == "reach"
        spec = docs[0]["spec"]
        assert spec["reachability"]["hosts"] == ["ns-b/*", "ns-c/*"]
        assert spec["displayName"] == "reach"
        assert spec["etag"] == '"abc"'
        assert spec["resilience"] == {"circuitBreakerSensitivity": "LOW"}

    def test_non_custom_mode_still_merged(self, fake_client, service, group, topology):
        a, b = service("svcA", "ns-a"), service("svcB", "ns-b")
        g2 = group("g2", "BRIDGED")
        stored = TrafficSetting(
            fqn=f"{g2.fqn}/settings/s",
            reachability=ReachabilitySettings(mode="GROUP"),
        )
        client = fake_client(
            topology=topology({"n1": "svcA", "n2": "svcB"}, [("n1", "n2")]),
            services=[a, b],
            groups={a.fqn: g2},
            settings={g2.fqn: stored},
        )

        docs, _ = run_pipeline(client)

        assert docs[0]["spec"]["reachability"] == {"mode": "GROUP", "hosts": ["ns-b/*"]}


class TestMixedPipeline:
    """DIRECT and bridged groups in one topology."""

    @pytest.fixture
    def mixed_client(self, fake_client, service, group, topology):
        a = service("svcA", "ns-shared")
        b = service("svcB", "ns-shared")
        c = service("svcC", "ns-c")
        return fake_client(
            topology=topology(
                {"n1": "svcA", "n2": "svcB", "n3": "svcC"},
                [("n1", "n3"), ("n2", "n3")],
            ),
            services=[a, b, c],
            groups={a.fqn: group("g1", "DIRECT"), b.fqn: group("g2", "BRIDGED")},
        )

    def test_shared_dedup(self, mixed_client):
        """Test a destination merged for DIRECT is skipped for bridged in the same namespace."""
        docs, _ = run_pipeline(mixed_client)

        assert [d["kind"] for d in docs] == ["Sidecar", "TrafficSetting"]
        assert docs[0]["spec"]["egress"][0]["hosts"][-1] == "ns-c/*"
        assert docs[1]["spec"]["reachability"]["hosts"] == ["istio-system/*", "xcp-multicluster/*"]

    def test_per_mode_dedup(self, mixed_client):
        """Test per-mode tracking merges the destination into both documents."""
        docs, _ = run_pipeline(mixed_client, dedup_scope=DedupScope.PER_MODE)

        assert docs[0]["spec"]["egress"][0]["hosts"][-1] == "ns-c/*"
        assert docs[1]["spec"]["reachability"]["hosts"][-1] == "ns-c/*"


class TestPipelineFailures:
    """Failures abort the run."""

    def test_lookup_failure(self, fake_client, service, group, topology):
        a, b = service("svcA", "ns-a"), service("svcB", "ns-b")
        client = fake_client(
            topology=topology({"n1": "svcA", "n2": "svcB"}, [("n1", "n2"), ("n2", "n1")]),
            services=[a, b],
            groups={a.fqn: group("g1")},
            failing_lookups={b.fqn: ConnectionError("reset")},
        )

        with pytest.raises(TrafficGroupLookupError):
            run_pipeline(client)

    def test_setting_fetch_failure(self, fake_client, service, group, topology):
        a, b = service("svcA", "ns-a"), service("svcB", "ns-b")
        g2 = group("g2", "BRIDGED")
        client = fake_client(
            topology=topology({"n1": "svcA", "n2": "svcB"}, [("n1", "n2")]),
            services=[a, b],
            groups={a.fqn: g2},
            failing_settings={g2.fqn: RuntimeError("unavailable")},
        )

        with pytest.raises(RuntimeError, match="unavailable"):
            run_pipeline(client)

    def test_fake_satisfies_protocol(self, fake_client):
        """Test the in-memory backend covers the client contract."""
        client: ReachabilityAPIClient = fake_client()
        for method in ("fetch_topology", "fetch_services", "lookup_traffic_group", "fetch_traffic_setting"):
            assert callable(getattr(client, method))
