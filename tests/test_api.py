"""
tests/test_api.py

HTTP surface via FastAPI's TestClient, with a scripted backend and probe.

Coverage
--------
- Health and site listing
- Adding and removing sites (status codes for duplicates, static, unknown)
- Single and batch audits
- Data export (JSON and CSV), trends, revenue
- Per-site analysis and its 404s
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import FakeBackend, FakeProbe, make_target
from maintenance_os.main import create_app
from maintenance_os.schemas import Client
from maintenance_os.settings import Settings


@pytest.fixture()
def client(tmp_path):
    settings = Settings(
        REPORT_DIR=str(tmp_path / "reports"),
        DATA_FILE=str(tmp_path / "data.json"),
        SCHEDULER_ENABLED=False,
        EMAIL_ENABLED=False,
        CLIENTS=[Client(id="novum_care", name="Novum Care Group", tier="Premium")],
        TARGETS=[make_target("alpha")],
    )
    app = create_app(settings, backend=FakeBackend(), probe=FakeProbe())
    with TestClient(app) as c:
        yield c


# ---------------------------------------------------------------------------
# Sites
# ---------------------------------------------------------------------------


class TestSites:
    def test_healthz(self, client) -> None:
        assert client.get("/healthz").json() == {"ok": True, "backend": "fake"}

    def test_list_sites(self, client) -> None:
        body = client.get("/api/sites").json()
        assert [t["id"] for t in body["static"]] == ["alpha"]
        assert body["dynamic"] == []
        assert body["all"][0]["clientId"] == "novum_care"
        assert body["clients"][0]["name"] == "Novum Care Group"

    def test_add_and_remove(self, client) -> None:
        resp = client.post("/api/sites", json={"url": "beta.example.org"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["site"]["id"] == "beta_example_org"
        assert body["audit"] is None

        assert [t["id"] for t in client.get("/api/sites").json()["all"]] == ["alpha", "beta_example_org"]
        assert client.delete("/api/sites/beta_example_org").json() == {"success": True}
        assert client.get("/api/sites").json()["dynamic"] == []

    def test_add_with_audit(self, client) -> None:
        body = client.post("/api/sites", json={"url": "https://beta.example.org", "runAudit": True}).json()
        assert body["audit"]["success"] is True
        assert body["audit"]["result"]["targetId"] == "beta_example_org"

    def test_duplicate_site(self, client) -> None:
        resp = client.post("/api/sites", json={"url": "https://alpha.example.com"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Site already exists"

    def test_invalid_site(self, client) -> None:
        assert client.post("/api/sites", json={"url": ""}).status_code == 400

    def test_delete_static_site(self, client) -> None:
        assert client.delete("/api/sites/alpha").status_code == 400

    def test_delete_unknown_site(self, client) -> None:
        assert client.delete("/api/sites/nope").status_code == 404


# ---------------------------------------------------------------------------
# Audits and data
# ---------------------------------------------------------------------------


class TestAudits:
    def test_audit_one(self, client) -> None:
        body = client.post("/api/audit/alpha").json()
        assert body["success"] is True
        assert body["target"] == "Alpha"
        assert body["result"]["scores"]["performance"] == 85.0
        assert body["result"]["opportunities"] == ["Speed Optimization Service"]

    def test_audit_unknown_target(self, client) -> None:
        resp = client.post("/api/audit/nope")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Target not found"

    def test_audit_all(self, client) -> None:
        client.post("/api/sites", json={"url": "https://beta.example.org"})
        body = client.post("/api/audit").json()
        assert body["success"] is True
        assert sorted(r["result"]["targetId"] for r in body["results"]) == ["alpha", "beta_example_org"]

    def test_data_json(self, client) -> None:
        client.post("/api/audit/alpha")
        records = client.get("/api/data").json()
        assert len(records) == 1
        assert records[0]["targetId"] == "alpha"

    def test_data_csv(self, client) -> None:
        client.post("/api/audit/alpha")
        resp = client.get("/api/data", params={"format": "csv"})
        assert resp.headers["content-type"].startswith("text/csv")
        lines = resp.text.strip().splitlines()
        assert lines[0].startswith("Site,URL,Timestamp,Performance")
        assert lines[1].startswith("Alpha,https://alpha.example.com,")
        assert "Speed Optimization Service" in lines[1]

    def test_trends(self, client) -> None:
        client.post("/api/audit/alpha")
        client.post("/api/audit/alpha")
        series = client.get("/api/trends/alpha").json()
        assert len(series) == 2
        assert series[0]["timestamp"] < series[1]["timestamp"]

    def test_revenue(self, client) -> None:
        client.post("/api/audit/alpha")
        body = client.get("/api/revenue").json()
        assert body["count"] == 1
        assert body["totalMin"] == 500
        assert body["totalMax"] == 1500
        assert body["breakdown"][0]["site"] == "Alpha"


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


class TestAnalysis:
    def test_unknown_site(self, client) -> None:
        resp = client.get("/api/analysis/nope")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Site not found"

    def test_no_data(self, client) -> None:
        resp = client.get("/api/analysis/alpha")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "No audit data available"

    def test_analysis(self, client) -> None:
        client.post("/api/audit/alpha")
        body = client.get("/api/analysis/alpha").json()
        assert set(body) == {"target", "audit", "analysis", "recommendations", "generatedAt"}
        assert body["target"]["id"] == "alpha"
        assert body["audit"]["scores"]["seo"] == 95.0
