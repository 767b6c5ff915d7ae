"""Capability transition & TOM configuration API."""

import pytest

from aigov.models.audit import AuditLog


# Uses shared fixtures from conftest.py: client, session (autouse), governed, use_case


def _derive(client, use_case_id, **body):
    return client.post(f"/api/v1/use-cases/{use_case_id}/capability/derive", json=body)


# ═════════════════════════════════════════════════════════════════
# 1. Configuration
# ═════════════════════════════════════════════════════════════════
class TestConfiguration:
    def test_default_transition_config(self, client):
        d = client.get("/api/v1/capability/config").get_json()
        assert d["enabled"] is True
        assert [m["id"] for m in d["knowledge_transfer_milestones"]][:2] == ["kt_001", "kt_002"]
        assert d["independence_targets"]["transition"]["min"] == 50

    def test_update_transition_config(self, client):
        r = client.put("/api/v1/capability/config", json={
            "knowledge_transfer_milestones": [{"id": "kt_a", "name": "Handover", "order": 1}],
        })
        assert r.status_code == 200
        d = client.get("/api/v1/capability/config").get_json()
        assert [m["id"] for m in d["knowledge_transfer_milestones"]] == ["kt_a"]

    def test_milestone_without_id_rejected(self, client):
        r = client.put("/api/v1/capability/config", json={
            "knowledge_transfer_milestones": [{"name": "Handover"}],
        })
        assert r.status_code == 422

    def test_non_object_config_rejected(self, client):
        r = client.put("/api/v1/capability/config", json=["not", "an", "object"])
        assert r.status_code == 422

    def test_default_tom_config(self, client):
        d = client.get("/api/v1/tom/config").get_json()
        assert [p["id"] for p in d["phases"]] == ["foundation", "strategic", "transition", "steady_state"]

    def test_tom_config_rejects_unknown_transition_target(self, client):
        tom = client.get("/api/v1/tom/config").get_json()
        tom["phases"][0]["allowed_transitions"] = ["nowhere"]
        r = client.put("/api/v1/tom/config", json=tom)
        assert r.status_code == 422
        assert r.get_json()["details"] == {"phases": ["nowhere"]}

    def test_tom_config_string_flag(self, client):
        r = client.put("/api/v1/tom/config", json={"enabled": "false"})
        assert r.status_code == 200
        assert client.get("/api/v1/tom/config").get_json()["enabled"] is False


# ═════════════════════════════════════════════════════════════════
# 2. Per use case
# ═════════════════════════════════════════════════════════════════
class TestUseCaseCapability:
    def test_empty_capability(self, client, use_case):
        d = client.get(f"/api/v1/use-cases/{use_case['id']}/capability").get_json()
        assert d["derived"] is None
        assert d["progress"] == {"kt": 0, "training": 0, "phase": "foundation"}

    def test_derive(self, client, use_case):
        r = _derive(client, use_case["id"])
        assert r.status_code == 200
        d = r.get_json()
        assert d["status"] == "derived"
        # Backlog → Foundation phase, default CoE-led model
        assert d["capability"]["archetype"] == "foundation_coe"
        assert d["capability"]["independence_percentage"] == 10
        assert d["capability"]["derived"] is True

        actions = [log.action for log in AuditLog.query.all()]
        assert "capability.derive" in actions

    def test_derive_uses_current_phase(self, client, use_case):
        client.put(f"/api/v1/use-cases/{use_case['id']}",
                   json={"use_case_status": "In-flight", "deployment_status": "Pilot"})
        d = _derive(client, use_case["id"]).get_json()
        assert d["capability"]["archetype"] == "strategic_hybrid"
        assert d["capability"]["independence_percentage"] == 40

    def test_manual_edit_is_protected(self, client, use_case):
        _derive(client, use_case["id"])
        r = client.put(f"/api/v1/use-cases/{use_case['id']}/capability", json={
            "staffing": {"current": {"vendor": {"total": 1}, "client": {"total": 3}}},
        })
        assert r.status_code == 200
        assert r.get_json()["derived"] is False
        assert r.get_json()["independence_percentage"] == 75

        d = _derive(client, use_case["id"]).get_json()
        assert d["status"] == "skipped"
        assert d["reason"] == "Has manual capability data - override protection"
        assert d["capability"]["independence_percentage"] == 75

    def test_force_overrides_manual_edit(self, client, use_case):
        client.put(f"/api/v1/use-cases/{use_case['id']}/capability", json={"independence_percentage": 70})
        d = _derive(client, use_case["id"], force=True).get_json()
        assert d["status"] == "derived"
        assert d["capability"]["derived"] is True
        assert d["capability"]["independence_percentage"] == 10

    def test_missing_use_case(self, client):
        assert _derive(client, 4242).status_code == 404

    @pytest.mark.parametrize("edits, field", [
        ({"independence_percentage": 250}, "independence_percentage"),
        ({"independence_percentage": -5}, "independence_percentage"),
        ({"independence_percentage": "40"}, "independence_percentage"),
        ({"independence_percentage": True}, "independence_percentage"),
        ({"staffing": {"current": {"vendor": {"total": "two"}, "client": {"total": 1}}}},
         "staffing.current.vendor.total"),
        ({"staffing": {"current": {"vendor": {"total": 1}, "client": {"total": -1}}}},
         "staffing.current.client.total"),
        ({"staffing": {"current": {"vendor": 3}}}, "staffing.current.vendor"),
        ({"staffing": {"planned": {"month6": {"vendor": "half"}}}}, "staffing.planned.month6.vendor"),
        ({"staffing": "lots"}, "staffing"),
        ({"training": ["hours"]}, "training"),
        ({"training": {"total_training_hours_planned": -8}}, "training.total_training_hours_planned"),
        ({"knowledge_transfer": {"completed_milestones": "kt_001"}}, "knowledge_transfer.completed_milestones"),
        ({"self_sufficiency_target": {"target_independence": 120}}, "self_sufficiency_target.target_independence"),
        ({"independence_history": {"2026-01": 10}}, "independence_history"),
    ])
    def test_invalid_manual_edit_rejected(self, client, use_case, edits, field):
        _derive(client, use_case["id"])
        r = client.put(f"/api/v1/use-cases/{use_case['id']}/capability", json=edits)
        assert r.status_code == 422
        assert field in r.get_json()["details"]

        stored = client.get(f"/api/v1/use-cases/{use_case['id']}/capability").get_json()
        assert stored["derived"] is True
        assert stored["independence_percentage"] == 10

    def test_rejected_edit_keeps_portfolio_readable(self, client, use_case):
        _derive(client, use_case["id"])
        client.put(f"/api/v1/use-cases/{use_case['id']}/capability", json={"independence_percentage": "40"})
        r = client.get("/api/v1/capability/portfolio-summary")
        assert r.status_code == 200
        assert r.get_json()["overall_independence"] == 10

    def test_boundary_percentages_accepted(self, client, use_case):
        for value in (0, 100, 42.5):
            r = client.put(f"/api/v1/use-cases/{use_case['id']}/capability",
                           json={"independence_percentage": value})
            assert r.status_code == 200
            assert r.get_json()["independence_percentage"] == value


# ═════════════════════════════════════════════════════════════════
# 3. Portfolio
# ═════════════════════════════════════════════════════════════════
class TestPortfolio:
    def _seed(self, client, governed):
        ids = []
        for title, size in (("Claims triage", "M"), ("Broker chatbot", "L"), ("Fraud scoring", "S")):
            r = client.post("/api/v1/use-cases", json=governed(title=title, t_shirt_size=size))
            ids.append(r.get_json()["id"])
        return ids

    def test_dry_run_stores_nothing(self, client, governed):
        ids = self._seed(client, governed)
        d = client.post("/api/v1/capability/derive-all", json={"dry_run": True}).get_json()
        assert d["total_processed"] == 3
        assert d["derived"] == 3
        assert all(r["reason"] == "Dry run - not saved" for r in d["results"])
        stats = client.get("/api/v1/capability/population-stats").get_json()
        assert stats["with_capability"] == 0
        assert client.get(f"/api/v1/use-cases/{ids[0]}/capability").get_json()["derived"] is None

    def test_derive_all_respects_manual_data(self, client, governed):
        ids = self._seed(client, governed)
        client.put(f"/api/v1/use-cases/{ids[1]}/capability", json={"independence_percentage": 30})

        d = client.post("/api/v1/capability/derive-all", json={}).get_json()
        assert (d["derived"], d["skipped"], d["errors"]) == (2, 1, 0)

        stats = client.get("/api/v1/capability/population-stats").get_json()
        assert stats == {
            "total": 3,
            "with_capability": 3,
            "with_derived_capability": 2,
            "with_manual_capability": 1,
            "needs_population": 0,
        }

    def test_portfolio_summary_and_projection(self, client, governed):
        self._seed(client, governed)
        client.post("/api/v1/capability/derive-all", json={})

        summary = client.get("/api/v1/capability/portfolio-summary").get_json()
        assert summary["use_cases_tracked"] == 3
        assert summary["overall_independence"] == 10
        # 4 + 6 + 2 FTE at 80 / 20 split
        assert summary["total_vendor_fte"] == 9.6
        assert summary["total_client_fte"] == 2.4
        assert summary["kt_milestones_total"] == 18

        projection = client.get("/api/v1/capability/staffing-projection").get_json()["projection"]
        assert len(projection) == 4
        for point in projection:
            assert point["vendor_fte"] + point["client_fte"] == pytest.approx(12.0)

    def test_empty_portfolio(self, client):
        assert client.get("/api/v1/capability/staffing-projection").get_json() == {"projection": []}
        summary = client.get("/api/v1/capability/portfolio-summary").get_json()
        assert summary["use_cases_tracked"] == 0
