"""Audit trail and health endpoints."""


# Uses shared fixtures from conftest.py: client, session (autouse), governed, use_case


class TestAuditLog:
    def test_create_is_audited(self, client, use_case):
        d = client.get(f"/api/v1/audit?entity_type=use_case&entity_id={use_case['id']}").get_json()
        assert d["total"] == 1
        assert d["audit_logs"][0]["action"] == "create"
        assert d["audit_logs"][0]["diff"]["use_case_status"] == "Backlog"

    def test_actor_header_recorded(self, client, use_case):
        client.put(f"/api/v1/use-cases/{use_case['id']}", json={"description": "v2"},
                   headers={"X-Actor": "priya.shah"})
        d = client.get("/api/v1/audit?actor=priya.shah").get_json()
        assert d["total"] == 1
        assert d["audit_logs"][0]["diff"]["description"]["new"] == "v2"

    def test_action_prefix_filter(self, client, governed):
        uc = client.post("/api/v1/use-cases", json=governed(cost_savings=None)).get_json()
        client.put(f"/api/v1/use-cases/{uc['id']}", json={"use_case_status": "In-flight"})
        d = client.get("/api/v1/audit?action=governance.").get_json()
        assert [log["action"] for log in d["audit_logs"]] == ["governance.activation_blocked"]

    def test_governance_history(self, client, use_case):
        uid = use_case["id"]
        client.put(f"/api/v1/use-cases/{uid}", json={"use_case_status": "In-flight"})
        client.put(f"/api/v1/use-cases/{uid}", json={"primary_business_owner": ""})
        d = client.get(f"/api/v1/use-cases/{uid}/governance-history").get_json()
        assert [e["action"] for e in d["events"]] == ["governance.auto_deactivation"]
        assert d["events"][0]["diff"]["use_case_status"] == {"old": "In-flight", "new": "Backlog"}

    def test_single_entry(self, client, use_case):
        log_id = client.get("/api/v1/audit").get_json()["audit_logs"][0]["id"]
        assert client.get(f"/api/v1/audit/{log_id}").status_code == 200
        assert client.get("/api/v1/audit/99999").status_code == 404

    def test_pagination(self, client):
        for i in range(3):
            client.post("/api/v1/use-cases", json={"title": f"Idea {i}"})
        d = client.get("/api/v1/audit?per_page=2&page=2").get_json()
        assert d["total"] == 3
        assert d["pages"] == 2
        assert len(d["audit_logs"]) == 1


class TestHealth:
    def test_ready(self, client):
        r = client.get("/api/v1/health/ready")
        assert r.status_code == 200
        assert r.get_json() == {"status": "ok"}

    def test_live(self, client):
        r = client.get("/api/v1/health/live")
        assert r.status_code == 200
        d = r.get_json()
        assert d["status"] == "healthy"
        assert d["checks"]["database"]["status"] == "ok"

    def test_request_headers(self, client):
        r = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc-123"})
        assert r.headers["X-Request-ID"] == "abc-123"
        assert "X-Request-Duration-Ms" in r.headers

    def test_unknown_api_route(self, client):
        r = client.get("/api/v1/does-not-exist")
        assert r.status_code == 404
        assert r.get_json()["error"] == "Not found"
