import pytest
from fastapi.testclient import TestClient

from server import create_app
from topicmesh.api.dependencies import get_admin, get_schema_registry
from topicmesh.core.config import Settings, get_settings
from topicmesh.core.exceptions import ClusterOperationError
from topicmesh.core.security import create_access_token

from conftest import KNOWN_DOMAINS, RESOURCES, STREETLIGHTS

MEASURED = "simple.streetlights.public.light.measured"


@pytest.fixture
def cfg():
    return Settings(
        spec_path=str(STREETLIGHTS),
        schema_base_path=str(RESOURCES),
        known_domains=list(KNOWN_DOMAINS),
        metrics_enabled=True,
        telemetry_query_timeout_sec=5,
    )


@pytest.fixture
def api(cfg, admin, registry):
    app = create_app(cfg)
    app.dependency_overrides[get_settings] = lambda: cfg
    app.dependency_overrides[get_admin] = lambda: admin
    app.dependency_overrides[get_schema_registry] = lambda: registry
    return TestClient(app)


@pytest.fixture
def auth():
    return {"Authorization": f"Bearer {create_access_token('ops', domains=['simple.streetlights'])}"}


def test_describe_domain(api):
    resp = api.get("/api/v1/domain")
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == "simple.streetlights"
    assert [c["topic"] for c in body["channels"]] == [MEASURED, "london.hammersmith.transport.public.tube"]
    assert any(b["foreign"] for b in body["bindings"])


def test_provision_requires_token(api):
    assert api.post("/api/v1/domain/provision").status_code == 401
    bad = api.post("/api/v1/domain/provision", headers={"Authorization": "Bearer not-a-jwt"})
    assert bad.status_code == 401


def test_provision_rejects_token_for_other_domain(api, admin):
    token = create_access_token("ops", domains=["acme.payments"])
    resp = api.post("/api/v1/domain/provision", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 403
    assert admin.calls == []


def test_provision_defaults_to_dry_run(api, auth, admin):
    resp = api.post("/api/v1/domain/provision", headers=auth)
    assert resp.status_code == 200
    body = resp.json()
    assert body["dry_run"] is True and body["success"] is True
    kinds = [op["kind"] for op in body["plan"]["operations"]]
    assert kinds[:2] == ["register-schema", "create-topic"]
    assert {op["outcome"] for op in body["plan"]["operations"]} == {"pending"}
    assert admin.mutations() == []


def test_provision_applies(api, auth, admin):
    resp = api.post("/api/v1/domain/provision", params={"dry_run": "false"}, headers=auth)
    assert resp.status_code == 200
    assert {op["outcome"] for op in resp.json()["plan"]["operations"]} == {"applied"}
    assert MEASURED in admin.topics

    again = api.post("/api/v1/domain/provision", params={"dry_run": "false"}, headers=auth)
    assert again.json()["plan"]["operations"] == []


def test_partial_failure_is_multi_status(api, auth, admin):
    admin.fail_on[("create_topic", MEASURED)] = ClusterOperationError("PolicyViolationError")
    resp = api.post("/api/v1/domain/provision", params={"dry_run": "false"}, headers=auth)
    assert resp.status_code == 207
    body = resp.json()
    assert body["success"] is False
    failed = [op for op in body["plan"]["operations"] if op["outcome"] == "failed"]
    assert [op["target"] for op in failed] == [MEASURED]


def test_storage(api, admin):
    desc = admin.add_topic(MEASURED, 2, 2)
    for partition, broker in desc.replica_targets():
        admin.sizes[(MEASURED, partition, broker)] = 100
    admin.end[(MEASURED, 0)] = 5
    admin.end[(MEASURED, 1)] = 6

    resp = api.get("/api/v1/domain/storage")
    assert resp.status_code == 200
    assert resp.json() == {MEASURED: {"storage": 400, "offset-total": 11}}


def test_consumption(api, admin):
    admin.groups = {"dashboards": {(MEASURED, 0): 9}, "unrelated": {("acme.payments.settled", 0): 1}}
    resp = api.get("/api/v1/domain/consumption")
    assert resp.json() == [{"group_id": "dashboards", "offset_total": 9, "partitions": 1}]
    assert api.get("/api/v1/domain/consumption", params={"prefix": "acme"}).json()[0]["group_id"] == "unrelated"


def test_unreachable_cluster_is_503(api, admin):
    admin.unavailable = True
    resp = api.get("/api/v1/domain/storage")
    assert resp.status_code == 503
    assert resp.headers["content-type"].startswith("application/problem+json")
    assert resp.json()["title"] == "Cluster Unavailable"


def test_missing_document_is_404(api, cfg, tmp_path):
    missing = cfg.model_copy(update={"spec_path": str(tmp_path / "absent.yaml")})
    api.app.dependency_overrides[get_settings] = lambda: missing
    resp = api.get("/api/v1/domain")
    assert resp.status_code == 404
    assert resp.json()["type"] == "/spec-resource-not-found"


def test_naming_collision_is_422(api, cfg):
    unknown = cfg.model_copy(update={"known_domains": []})
    api.app.dependency_overrides[get_settings] = lambda: unknown
    resp = api.get("/api/v1/domain")
    assert resp.status_code == 422
    assert resp.json()["title"] == "Naming Collision"


def test_metrics(api, admin):
    admin.add_topic(MEASURED, 1, 1)
    admin.sizes[(MEASURED, 0, 0)] = 10
    admin.end[(MEASURED, 0)] = 42
    resp = api.get("/metrics")
    assert resp.status_code == 200
    assert f'topicmesh_topic_offset_total{{domain="simple.streetlights",topic="{MEASURED}"}} 42.0' in resp.text
    assert f'topicmesh_topic_storage_bytes{{domain="simple.streetlights",topic="{MEASURED}"}} 10.0' in resp.text
