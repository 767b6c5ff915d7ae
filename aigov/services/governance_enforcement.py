"""
Governance Enforcement — activation guard, regression detector, phase validator.

Layers on top of the gate evaluator in ``governance_rules``:

    check_activation_allowed()            status change into In-flight / Implemented
    check_governance_regression()         edit to an already-active use case
    check_phase_transition_requirements() TOM phase move with justification override

All three are pure: they take snapshots and configuration, never mutate
their inputs, and report outcomes as data. The update path in
``use_case_service`` turns those outcomes into persistence and audit events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from aigov.services.governance_rules import (
    GATE_NAMES,
    GATE_OPERATING_MODEL,
    GovernanceCheckResult,
    UseCaseSnapshot,
    evaluate_operating_model_gate,
    is_populated,
    perform_full_governance_check,
)
from aigov.services.tom import (
    PSEUDO_PHASE_IDS,
    TomConfig,
    ensure_tom_config,
    get_requirement_label,
)

logger = logging.getLogger(__name__)


# Statuses that require all governance gates before a use case may enter them
ACTIVATION_STATUSES = ("In-flight", "Implemented")

# Pre-active statuses; moves into these are never gated
BYPASS_STATUSES = ("Discovery", "Backlog", "On Hold")

# Use cases created before this instant are not auto-deactivated on regression
GOVERNANCE_ENFORCEMENT_DATE = datetime(2026, 1, 24, tzinfo=timezone.utc)

LEGACY_REASON = "Legacy use case — governance enforcement not retroactive"

# Status an active use case falls back to when a regression deactivates it
DEACTIVATED_STATUS = "Backlog"


# ═════════════════════════════════════════════════════════════════════════════
# Result types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class ActivationCheckResult:
    blocked: bool
    reason: str | None = None
    governance_check: GovernanceCheckResult | None = None

    def to_dict(self) -> dict:
        return {
            "blocked": self.blocked,
            "reason": self.reason,
            "governance_check": self.governance_check.to_dict() if self.governance_check else None,
        }


@dataclass
class RegressionResult:
    should_deactivate: bool
    regressed_gate: str | None = None
    is_legacy_use_case: bool = False
    reason: str | None = None
    missing_fields: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "should_deactivate": self.should_deactivate,
            "regressed_gate": self.regressed_gate,
            "is_legacy_use_case": self.is_legacy_use_case,
            "reason": self.reason,
            "missing_fields": list(self.missing_fields),
        }


@dataclass
class PhaseTransitionResult:
    allowed: bool
    requires_justification: bool
    current_phase: str
    target_phase: str
    pending_exit_requirements: list[str] = field(default_factory=list)
    is_exiting_unphased: bool = False

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "requires_justification": self.requires_justification,
            "current_phase": self.current_phase,
            "target_phase": self.target_phase,
            "pending_exit_requirements": list(self.pending_exit_requirements),
            "is_exiting_unphased": self.is_exiting_unphased,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Activation guard
# ═════════════════════════════════════════════════════════════════════════════

def is_activation_status(status: str | None) -> bool:
    return status in ACTIVATION_STATUSES


def check_activation_allowed(snapshot: UseCaseSnapshot, target_status: str | None) -> ActivationCheckResult:
    """Block a move into an activation status unless every gate passes."""
    if not is_activation_status(target_status):
        return ActivationCheckResult(blocked=False)

    # Callers pass the post-update snapshot so Gate 1 sees the target status
    governance = perform_full_governance_check(snapshot)
    if governance.can_activate:
        return ActivationCheckResult(blocked=False)

    logger.info(
        "Activation to %s blocked: missing=%s", target_status, governance.missing_fields,
        extra={"event_type": "activation_blocked"},
    )
    return ActivationCheckResult(
        blocked=True,
        reason="GOVERNANCE_INCOMPLETE",
        governance_check=governance,
    )


def build_activation_blocked_response(result: ActivationCheckResult) -> dict:
    governance = result.governance_check
    return {
        "error": result.reason or "GOVERNANCE_INCOMPLETE",
        "message": "Use case cannot be activated until all governance gates pass",
        "gates": {g.gate_id: g.to_dict() for g in governance.gates} if governance else {},
        "missing_fields": list(governance.missing_fields) if governance else [],
        "overall_progress": governance.overall_progress if governance else 0,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Regression detector
# ═════════════════════════════════════════════════════════════════════════════

def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_legacy_use_case(snapshot: UseCaseSnapshot, enforcement_date: datetime = GOVERNANCE_ENFORCEMENT_DATE) -> bool:
    """Created strictly before the enforcement date. Unknown creation → not legacy."""
    if snapshot.created_at is None:
        return False
    return _as_utc(snapshot.created_at) < _as_utc(enforcement_date)


def check_governance_regression(
    current: UseCaseSnapshot,
    proposed_updates: Mapping[str, Any] | None,
    *,
    enforcement_date: datetime = GOVERNANCE_ENFORCEMENT_DATE,
) -> RegressionResult:
    """Decide whether an edit to an active use case breaks Gate 1.

    Only Gate 1 (Operating Model) drives deactivation. Legacy use cases get a
    warning result instead of a deactivation.
    """
    if not is_activation_status(current.use_case_status):
        return RegressionResult(should_deactivate=False)

    merged = current.merged(proposed_updates)
    before = evaluate_operating_model_gate(current)
    after = evaluate_operating_model_gate(merged)
    if not (before.passed and not after.passed):
        return RegressionResult(should_deactivate=False)

    if is_legacy_use_case(current, enforcement_date):
        logger.warning(
            "Legacy use case regressed on %s but stays active: missing=%s",
            GATE_OPERATING_MODEL, after.missing_fields,
            extra={"event_type": "legacy_warning", "gate": GATE_OPERATING_MODEL},
        )
        return RegressionResult(
            should_deactivate=False,
            regressed_gate=GATE_OPERATING_MODEL,
            is_legacy_use_case=True,
            reason=LEGACY_REASON,
            missing_fields=after.missing_fields,
        )

    reason = (
        f"Governance regression: {GATE_NAMES[GATE_OPERATING_MODEL]} gate no longer passes "
        f"(missing: {', '.join(after.missing_fields)})"
    )
    logger.info(reason, extra={"event_type": "auto_deactivation", "gate": GATE_OPERATING_MODEL})
    return RegressionResult(
        should_deactivate=True,
        regressed_gate=GATE_OPERATING_MODEL,
        is_legacy_use_case=False,
        reason=reason,
        missing_fields=after.missing_fields,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Phase transition validator
# ═════════════════════════════════════════════════════════════════════════════

def _gate_flags(governance_gates: GovernanceCheckResult | Mapping[str, bool] | None) -> dict[str, bool]:
    if governance_gates is None:
        return {}
    if isinstance(governance_gates, GovernanceCheckResult):
        return governance_gates.gate_flags()
    return {k: bool(v) for k, v in governance_gates.items()}


def _requirement_met(snapshot: UseCaseSnapshot, requirement: str, gates: dict[str, bool]) -> bool:
    if requirement in GATE_NAMES:
        return gates.get(requirement, False)
    return is_populated(snapshot.get(requirement))


def check_phase_transition_requirements(
    snapshot: UseCaseSnapshot,
    from_phase_id: str | None,
    to_phase_id: str | None,
    phase_config: TomConfig | Mapping[str, Any] | None,
    justification: str | None = None,
    governance_gates: GovernanceCheckResult | Mapping[str, bool] | None = None,
) -> PhaseTransitionResult:
    """Check the source phase's exit requirements for a phase move.

    Unmet requirements (and an off-path target) can be overridden with a
    non-blank justification; the result then reports
    ``requires_justification=True`` so the caller can record it.
    """
    config = ensure_tom_config(phase_config)
    from_phase = config.get_phase(from_phase_id)
    to_phase = config.get_phase(to_phase_id)
    current_name = from_phase.name if from_phase else (from_phase_id or "unphased")
    target_name = to_phase.name if to_phase else (to_phase_id or "unknown")

    if from_phase_id == to_phase_id:
        return PhaseTransitionResult(
            allowed=True, requires_justification=False,
            current_phase=current_name, target_phase=target_name,
        )

    if from_phase is None or from_phase_id in PSEUDO_PHASE_IDS:
        return PhaseTransitionResult(
            allowed=True, requires_justification=False,
            current_phase=current_name, target_phase=target_name,
            is_exiting_unphased=True,
        )

    gates = _gate_flags(governance_gates)
    pending = [
        get_requirement_label(req)
        for req in from_phase.exit_requirements
        if not _requirement_met(snapshot, req, gates)
    ]
    if from_phase.allowed_transitions and to_phase_id not in from_phase.allowed_transitions:
        pending.append(f"Off-path transition to {target_name}")

    if not pending:
        return PhaseTransitionResult(
            allowed=True, requires_justification=False,
            current_phase=current_name, target_phase=target_name,
        )

    justified = bool(justification and justification.strip())
    if justified:
        logger.info(
            "Phase transition %s → %s overridden with justification; pending=%s",
            from_phase_id, to_phase_id, pending,
            extra={"event_type": "phase_transition_override"},
        )
    return PhaseTransitionResult(
        allowed=justified,
        requires_justification=True,
        current_phase=current_name,
        target_phase=target_name,
        pending_exit_requirements=pending,
    )


def build_phase_transition_required_response(result: PhaseTransitionResult) -> dict:
    return {
        "error": "PHASE_TRANSITION_REQUIRES_JUSTIFICATION",
        "message": "Provide phase_transition_justification to proceed with incomplete exit requirements",
        "current_phase": result.current_phase,
        "target_phase": result.target_phase,
        "pending_exit_requirements": list(result.pending_exit_requirements),
    }
