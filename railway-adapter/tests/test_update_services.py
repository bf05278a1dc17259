import pytest

import railway_adapter.adapter as adapter_module
from railway_adapter.adapter import RailwayAdapter, RailwayClientConfig, RailwayError, ServiceUpdateError
from railway_fakes import FakeResponse, FakeTransport, connection_error, environment_page, mutation_ok, service_edge


ENV_ID = "550e8400-e29b-41d4-a716-446655440001"
REPLICA_META = {"serviceManifest": {"deploy": {"multiRegionConfig": {"us-east4": {"numReplicas": 2}}}}}


def _adapter(monkeypatch, responses) -> tuple[RailwayAdapter, FakeTransport]:
    transport = FakeTransport(responses)
    monkeypatch.setattr(adapter_module, "urlopen", transport)
    return RailwayAdapter(RailwayClientConfig(token="railway-token")), transport


def _three_matching_services():
    return environment_page(
        [
            service_edge("svc-1", "api", "acme/api:1.0.0", REPLICA_META),
            service_edge("svc-2", "worker", "acme/worker:1.0.0"),
            service_edge("svc-3", "cron", "acme/cron"),
        ]
    )


def test_update_services_updates_matches_in_order(monkeypatch):
    adapter, transport = _adapter(
        monkeypatch,
        [
            _three_matching_services(),
            mutation_ok("serviceInstanceUpdate"),
            mutation_ok("serviceInstanceDeploy"),
            mutation_ok("serviceInstanceUpdate"),
            mutation_ok("serviceInstanceDeploy"),
            mutation_ok("serviceInstanceUpdate"),
            mutation_ok("serviceInstanceDeploy"),
        ],
    )
    updated = adapter.update_services(ENV_ID, ["acme/"], "2.0.0")
    assert updated == ["api", "worker", "cron"]
    assert transport.operations() == ["Environment"] + ["ServiceInstanceUpdate", "ServiceInstanceDeploy"] * 3
    images = [call["variables"]["input"]["source"]["image"] for call in transport.calls if "input" in call["variables"]]
    assert images == ["acme/api:2.0.0", "acme/worker:2.0.0", "acme/cron:2.0.0"]
    replicas = [call["variables"]["input"]["numReplicas"] for call in transport.calls if "input" in call["variables"]]
    assert replicas == [2, 1, 1]


def test_update_services_without_matches_makes_no_mutations(monkeypatch):
    adapter, transport = _adapter(monkeypatch, [_three_matching_services()])
    assert adapter.update_services(ENV_ID, ["other/"], "2.0.0") == []
    assert transport.operations() == ["Environment"]


def test_update_services_stops_at_first_failure_and_reports_progress(monkeypatch):
    adapter, transport = _adapter(
        monkeypatch,
        [
            _three_matching_services(),
            mutation_ok("serviceInstanceUpdate"),
            mutation_ok("serviceInstanceDeploy"),
            FakeResponse({"errors": [{"message": "Image not found"}]}),
        ],
    )
    with pytest.raises(ServiceUpdateError) as excinfo:
        adapter.update_services(ENV_ID, ["acme/"], "2.0.0")
    assert excinfo.value.updated_services == ["api"]
    assert excinfo.value.service_name == "worker"
    assert str(excinfo.value) == (
        "failed to update service worker: failed to update service instance: GraphQL error: Image not found"
    )
    assert transport.operations() == ["Environment", "ServiceInstanceUpdate", "ServiceInstanceDeploy", "ServiceInstanceUpdate"]


def test_update_services_counts_service_only_after_deploy(monkeypatch):
    adapter, _ = _adapter(
        monkeypatch,
        [
            _three_matching_services(),
            mutation_ok("serviceInstanceUpdate"),
            connection_error("timed out"),
        ],
    )
    with pytest.raises(ServiceUpdateError) as excinfo:
        adapter.update_services(ENV_ID, ["acme/api"], "2.0.0")
    assert excinfo.value.updated_services == []
    assert "failed to deploy service instance" in str(excinfo.value)


def test_update_services_listing_failure(monkeypatch):
    adapter, _ = _adapter(monkeypatch, [connection_error()])
    with pytest.raises(RailwayError, match="failed to get services") as excinfo:
        adapter.update_services(ENV_ID, ["acme/"], "2.0.0")
    assert not isinstance(excinfo.value, ServiceUpdateError)
