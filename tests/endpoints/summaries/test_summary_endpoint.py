import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from summary_service.core.metrics.summary.biased_quantile_estimator import DEFAULT_QUANTILES, Item
from summary_service.endpoints.summaries.summary_endpoint import router
from summary_service.service.prometheus.shared_summary_registry import get_shared_summary_registry
from summary_service.service.prometheus.summary_registry import SummaryRegistry


@pytest.fixture
def test_registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def summaries(test_registry: CollectorRegistry) -> SummaryRegistry:
    return SummaryRegistry(registry=test_registry, default_quantiles=DEFAULT_QUANTILES)


@pytest.fixture
def client(summaries: SummaryRegistry) -> TestClient:
    """Client for an app serving the summary endpoints against an isolated registry."""
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_shared_summary_registry] = lambda: summaries
    return TestClient(app)


class TestDeclareSummary:
    def test_declare_with_defaults(self, client: TestClient):
        response = client.post("/summaries", json={"name": "latency"})

        assert response.status_code == 200
        assert response.json() == {
            "name": "latency",
            "metricName": "summary_latency",
            "quantiles": [
                {"quantile": 0.5, "error": 0.05},
                {"quantile": 0.9, "error": 0.01},
                {"quantile": 0.99, "error": 0.001},
            ],
        }

    def test_declare_with_quantiles(self, client: TestClient, summaries: SummaryRegistry):
        payload = {
            "name": "payload_size",
            "documentation": "Payload size in bytes",
            "quantiles": [{"quantile": 0.75, "error": 0.01}],
            "labels": {"service": "api"},
        }

        response = client.post("/summaries", json=payload)

        assert response.status_code == 200
        assert response.json()["quantiles"] == [{"quantile": 0.75, "error": 0.01}]
        summary = summaries.get("payload_size")
        assert summary.documentation == "Payload size in bytes"
        assert summary.labels == {"service": "api"}

    def test_redeclare_same_quantiles(self, client: TestClient):
        payload = {"name": "latency", "quantiles": [{"quantile": 0.5, "error": 0.05}]}

        assert client.post("/summaries", json=payload).status_code == 200
        assert client.post("/summaries", json=payload).status_code == 200

    def test_redeclare_conflict(self, client: TestClient):
        client.post("/summaries", json={"name": "latency", "quantiles": [{"quantile": 0.5, "error": 0.05}]})

        response = client.post(
            "/summaries", json={"name": "latency", "quantiles": [{"quantile": 0.9, "error": 0.01}]}
        )

        assert response.status_code == 409
        assert "already declared" in response.json()["detail"]

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "latency", "quantiles": [{"quantile": 1.5, "error": 0.01}]},
            {"name": "latency", "quantiles": [{"quantile": 0.5, "error": -0.01}]},
            {"name": "latency", "quantiles": []},
            {"name": "bad-name"},
            {"name": "latency", "labels": {"quantile": "0.5"}},
        ],
    )
    def test_declare_invalid(self, client: TestClient, summaries: SummaryRegistry, payload):
        response = client.post("/summaries", json=payload)

        assert response.status_code == 400
        assert "Invalid summary declaration" in response.json()["detail"]
        assert summaries.names() == []

    def test_declare_missing_name(self, client: TestClient):
        assert client.post("/summaries", json={}).status_code == 422


class TestListSummaries:
    def test_list_empty(self, client: TestClient):
        response = client.get("/summaries")

        assert response.status_code == 200
        assert response.json() == {"summaries": []}

    def test_list(self, client: TestClient):
        client.post("/summaries", json={"name": "zeta"})
        client.post("/summaries/alpha/observations", json={"values": [1.0]})

        assert client.get("/summaries").json() == {"summaries": ["alpha", "zeta"]}


class TestObservations:
    def test_observe_and_get(self, client: TestClient):
        response = client.post(
            "/summaries/latency/observations", json={"values": [float(i) for i in range(1, 11)]}
        )

        assert response.status_code == 200
        assert response.json() == {"status": "success", "observed": 10}

        response = client.get("/summaries/latency")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "latency"
        assert data["metricName"] == "summary_latency"
        assert data["count"] == 10
        assert data["sum"] == 55.0
        assert [q["quantile"] for q in data["quantiles"]] == [0.5, 0.9, 0.99]
        assert data["quantiles"][0]["value"] in (5.0, 6.0)
        assert data["quantiles"][1]["value"] == 9.0

    def test_observe_exposes_metric(self, client: TestClient, test_registry: CollectorRegistry):
        client.post("/summaries/latency/observations", json={"values": [1.0, 2.0, 3.0]})

        assert test_registry.get_sample_value("summary_latency_count") == 3.0
        assert test_registry.get_sample_value("summary_latency_sum") == 6.0

    def test_observe_empty_batch(self, client: TestClient):
        response = client.post("/summaries/latency/observations", json={"values": []})

        assert response.status_code == 200
        assert response.json()["observed"] == 0
        assert client.get("/summaries/latency").json()["count"] == 0

    def test_observe_non_finite(self, client: TestClient):
        response = client.post(
            "/summaries/latency/observations",
            content='{"values": [1.0, 1e999]}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert "Error observing values" in response.json()["detail"]
        assert client.get("/summaries/latency").json()["count"] == 0

    def test_observe_invalid_name(self, client: TestClient, summaries: SummaryRegistry):
        response = client.post("/summaries/bad-name/observations", json={"values": [1.0]})

        assert response.status_code == 400
        assert summaries.names() == []

    def test_observe_mixed_case_names(self, client: TestClient, test_registry: CollectorRegistry):
        """Test that names differing only in case record into the same summary."""
        assert client.post("/summaries/Latency/observations", json={"values": [1.0]}).status_code == 200
        assert client.post("/summaries/latency/observations", json={"values": [2.0]}).status_code == 200

        data = client.get("/summaries/LATENCY").json()

        assert data["metricName"] == "summary_latency"
        assert data["count"] == 2
        assert client.get("/summaries").json() == {"summaries": ["latency"]}
        assert test_registry.get_sample_value("summary_latency_count") == 2.0

        assert client.delete("/summaries/Latency").status_code == 200
        assert client.get("/summaries/latency").status_code == 404

    def test_observe_malformed_body(self, client: TestClient):
        response = client.post("/summaries/latency/observations", json={"values": ["not a number"]})

        assert response.status_code == 422


class TestGetSummary:
    def test_get_empty(self, client: TestClient):
        client.post("/summaries", json={"name": "latency"})

        data = client.get("/summaries/latency").json()

        assert data["count"] == 0
        assert data["sum"] == 0.0
        assert all(q["value"] == 0.0 for q in data["quantiles"])

    def test_get_inconsistent(self, client: TestClient, summaries: SummaryRegistry):
        """Test that a summary in an inconsistent state is reported as a server error."""
        client.post("/summaries/latency/observations", json={"values": [1.0, 2.0]})
        summaries.get("latency")._estimator.items[0] = Item(1.0, 5, 0.0)

        response = client.get("/summaries/latency")

        assert response.status_code == 500
        assert "total_rank: 6" in response.json()["detail"]

    def test_get_unknown(self, client: TestClient):
        response = client.get("/summaries/unknown")

        assert response.status_code == 404
        assert "unknown" in response.json()["detail"]


class TestDumpEstimator:
    def test_dump(self, client: TestClient):
        client.post("/summaries/latency/observations", json={"values": [3.0, 1.0, 2.0]})

        response = client.get("/summaries/latency/estimator")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 3
        assert data["sum"] == 6.0
        assert data["quantiles"][0] == {"quantile": 0.5, "error": 0.05}
        assert [item["value"] for item in data["items"]] == [1.0, 2.0, 3.0]
        assert sum(item["g"] for item in data["items"]) == 3
        assert data["items"][0]["delta"] == 0.0
        assert data["items"][-1]["delta"] == 0.0

    def test_dump_unknown(self, client: TestClient):
        assert client.get("/summaries/unknown/estimator").status_code == 404


class TestDeleteSummary:
    def test_delete(self, client: TestClient, test_registry: CollectorRegistry):
        client.post("/summaries/latency/observations", json={"values": [1.0]})

        response = client.delete("/summaries/latency")

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        assert test_registry.get_sample_value("summary_latency_count") is None
        assert client.get("/summaries/latency").status_code == 404

    def test_delete_unknown(self, client: TestClient):
        assert client.delete("/summaries/unknown").status_code == 404
