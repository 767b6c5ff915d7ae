"""Activation guard, regression detector and phase transition validator."""

from datetime import datetime, timezone

import pytest

from aigov.services.governance_enforcement import (
    GOVERNANCE_ENFORCEMENT_DATE,
    LEGACY_REASON,
    build_activation_blocked_response,
    build_phase_transition_required_response,
    check_activation_allowed,
    check_governance_regression,
    check_phase_transition_requirements,
    is_legacy_use_case,
)
from aigov.services.governance_rules import (
    GATE_OPERATING_MODEL,
    UseCaseSnapshot,
    perform_full_governance_check,
)
from aigov.services.tom import default_tom_config

NEW = datetime(2026, 3, 1, tzinfo=timezone.utc)
OLD = datetime(2025, 6, 1, tzinfo=timezone.utc)


def _snapshot(**overrides):
    data = {
        "primary_business_owner": "Jordan Lee",
        "business_function": "Claims",
        "use_case_status": "In-flight",
        "revenue_impact": 4,
        "cost_savings": 4,
        "risk_reduction": 4,
        "broker_partner_experience": 4,
        "strategic_fit": 4,
        "explainability_required": True,
        "customer_harm_risk": "Low",
        "human_accountability": True,
        "data_outside_uk_eu": False,
        "third_party_model": False,
        "rai_risk_tier": "Tier 2",
        "created_at": NEW,
    }
    data.update(overrides)
    return UseCaseSnapshot.from_mapping(data)


# ═════════════════════════════════════════════════════════════════
# 1. Activation guard
# ═════════════════════════════════════════════════════════════════
class TestActivationGuard:
    @pytest.mark.parametrize("status", ["Discovery", "Backlog", "On Hold", None])
    def test_non_activation_targets_never_blocked(self, status):
        result = check_activation_allowed(UseCaseSnapshot(), status)
        assert result.blocked is False
        assert result.governance_check is None

    @pytest.mark.parametrize("status", ["In-flight", "Implemented"])
    def test_complete_use_case_may_activate(self, status):
        result = check_activation_allowed(_snapshot(use_case_status=status), status)
        assert result.blocked is False

    def test_incomplete_use_case_blocked(self):
        snap = _snapshot(strategic_fit=None, customer_harm_risk=None)
        result = check_activation_allowed(snap, "In-flight")
        assert result.blocked is True
        assert result.reason == "GOVERNANCE_INCOMPLETE"
        assert result.governance_check.missing_fields == ["strategic_fit"]

    def test_blocked_iff_cannot_activate(self):
        for snap in (_snapshot(), _snapshot(business_function=""), _snapshot(third_party_model=None)):
            blocked = check_activation_allowed(snap, "Implemented").blocked
            assert blocked is (not perform_full_governance_check(snap).can_activate)

    def test_blocked_response_lists_missing_fields(self):
        result = check_activation_allowed(_snapshot(primary_business_owner=None), "In-flight")
        body = build_activation_blocked_response(result)
        assert body["error"] == "GOVERNANCE_INCOMPLETE"
        assert body["missing_fields"] == ["primary_business_owner"]
        assert body["gates"][GATE_OPERATING_MODEL]["passed"] is False


# ═════════════════════════════════════════════════════════════════
# 2. Regression detector
# ═════════════════════════════════════════════════════════════════
class TestRegressionDetector:
    def test_inactive_use_case_never_regresses(self):
        result = check_governance_regression(_snapshot(use_case_status="Backlog"), {"business_function": None})
        assert result.should_deactivate is False
        assert result.regressed_gate is None

    def test_gate1_break_deactivates_new_use_case(self):
        result = check_governance_regression(_snapshot(), {"business_function": None})
        assert result.should_deactivate is True
        assert result.regressed_gate == GATE_OPERATING_MODEL
        assert result.is_legacy_use_case is False
        assert result.missing_fields == ["business_function"]
        assert "business_function" in result.reason

    def test_legacy_use_case_only_warned(self):
        result = check_governance_regression(_snapshot(created_at=OLD), {"primary_business_owner": ""})
        assert result.should_deactivate is False
        assert result.is_legacy_use_case is True
        assert result.regressed_gate == GATE_OPERATING_MODEL
        assert result.reason == LEGACY_REASON

    def test_gate1_already_failing_is_not_a_regression(self):
        snap = _snapshot(business_function=None)
        result = check_governance_regression(snap, {"primary_business_owner": None})
        assert result.should_deactivate is False

    def test_score_changes_do_not_regress(self):
        # Only Gate 1 drives deactivation
        result = check_governance_regression(_snapshot(), {"strategic_fit": None})
        assert result.should_deactivate is False

    def test_inputs_not_mutated(self):
        snap = _snapshot()
        updates = {"business_function": None}
        check_governance_regression(snap, updates)
        assert snap.business_function == "Claims"
        assert updates == {"business_function": None}

    def test_enforcement_date_is_injectable(self):
        result = check_governance_regression(
            _snapshot(created_at=NEW), {"business_function": None},
            enforcement_date=datetime(2027, 1, 1, tzinfo=timezone.utc),
        )
        assert result.is_legacy_use_case is True
        assert result.should_deactivate is False


class TestLegacyClassification:
    def test_before_enforcement_is_legacy(self):
        assert is_legacy_use_case(_snapshot(created_at=OLD))

    def test_on_enforcement_instant_is_not_legacy(self):
        assert not is_legacy_use_case(_snapshot(created_at=GOVERNANCE_ENFORCEMENT_DATE))

    def test_naive_timestamp_treated_as_utc(self):
        assert is_legacy_use_case(_snapshot(created_at=datetime(2026, 1, 23, 23, 59)))

    def test_unknown_creation_is_not_legacy(self):
        assert not is_legacy_use_case(_snapshot(created_at=None))


# ═════════════════════════════════════════════════════════════════
# 3. Phase transition validator
# ═════════════════════════════════════════════════════════════════
class TestPhaseTransition:
    def _check(self, snap, from_id, to_id, justification=None, config=None):
        return check_phase_transition_requirements(
            snap, from_id, to_id, config or default_tom_config(),
            justification=justification,
            governance_gates=perform_full_governance_check(snap),
        )

    def test_same_phase_always_allowed(self):
        result = self._check(UseCaseSnapshot(), "strategic", "strategic")
        assert result.allowed and not result.requires_justification

    def test_exit_requirements_met(self):
        result = self._check(_snapshot(), "strategic", "transition")
        assert result.allowed is True
        assert result.pending_exit_requirements == []
        assert result.current_phase == "Strategic"
        assert result.target_phase == "Transition"

    def test_unmet_requirements_need_justification(self):
        snap = _snapshot(rai_risk_tier=None, strategic_fit=None)
        result = self._check(snap, "strategic", "transition")
        assert result.allowed is False
        assert result.requires_justification is True
        assert result.pending_exit_requirements == [
            "Intake & Prioritization Gate", "Responsible AI Gate", "RAI Risk Tier",
        ]

    def test_justification_overrides(self):
        snap = _snapshot(rai_risk_tier=None)
        result = self._check(snap, "strategic", "transition", justification="Board approved 12 March")
        assert result.allowed is True
        assert result.requires_justification is True
        assert result.pending_exit_requirements == ["RAI Risk Tier"]

    def test_blank_justification_does_not_count(self):
        result = self._check(_snapshot(rai_risk_tier=None), "strategic", "transition", justification="   ")
        assert result.allowed is False

    def test_off_path_transition_flagged(self):
        result = self._check(_snapshot(), "foundation", "steady_state")
        assert result.allowed is False
        assert result.pending_exit_requirements == ["Off-path transition to Steady State"]

    @pytest.mark.parametrize("from_id", ["unmapped", "disabled", "no_such_phase", None])
    def test_exiting_unphased_is_allowed(self, from_id):
        result = self._check(UseCaseSnapshot(), from_id, "strategic")
        assert result.allowed is True
        assert result.is_exiting_unphased is True

    def test_accepts_stored_config_mapping(self):
        result = check_phase_transition_requirements(
            _snapshot(selected_kpis=None), "transition", "steady_state",
            default_tom_config().to_dict(),
        )
        assert result.pending_exit_requirements == ["Selected KPIs", "Target Independence"]

    def test_required_response_shape(self):
        result = self._check(_snapshot(rai_risk_tier=""), "strategic", "transition")
        body = build_phase_transition_required_response(result)
        assert body["error"] == "PHASE_TRANSITION_REQUIRES_JUSTIFICATION"
        assert body["pending_exit_requirements"] == ["RAI Risk Tier"]
        assert body["current_phase"] == "Strategic"
