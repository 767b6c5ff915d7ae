"""
Governance Gate Evaluator — three sequential compliance gates.

Gate 1  Operating Model          owner, business function, non-Discovery status
Gate 2  Intake & Prioritization  five business-value scores in [1, 5]
Gate 3  Responsible AI           five RAI attestation fields answered

Gates are evaluated strictly in order: a later gate cannot pass while an
earlier one fails, and a gate stopped that way reports ``blocked_by`` instead
of its own missing fields. Results are recomputed on every call.

Usage:
    from aigov.services.governance_rules import UseCaseSnapshot, perform_full_governance_check
    snapshot = UseCaseSnapshot.from_mapping(record)
    result = perform_full_governance_check(snapshot)
    # -> result.can_activate, result.missing_fields, result.to_dict()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Gate identifiers & field groups
# ═════════════════════════════════════════════════════════════════════════════

GATE_OPERATING_MODEL = "gate1_operating_model"
GATE_INTAKE = "gate2_intake_prioritization"
GATE_RESPONSIBLE_AI = "gate3_responsible_ai"

GATE_ORDER = (GATE_OPERATING_MODEL, GATE_INTAKE, GATE_RESPONSIBLE_AI)

GATE_NAMES: dict[str, str] = {
    GATE_OPERATING_MODEL: "Operating Model",
    GATE_INTAKE: "Intake & Prioritization",
    GATE_RESPONSIBLE_AI: "Responsible AI",
}

OPERATING_MODEL_FIELDS = ("primary_business_owner", "business_function", "use_case_status")

SCORE_FIELDS = (
    "revenue_impact",
    "cost_savings",
    "risk_reduction",
    "broker_partner_experience",
    "strategic_fit",
)

RAI_FIELDS = (
    "explainability_required",
    "customer_harm_risk",
    "human_accountability",
    "data_outside_uk_eu",
    "third_party_model",
)

SCORE_MIN = 1
SCORE_MAX = 5

# Status that keeps a use case out of Gate 1 even when it is set
PRE_INTAKE_STATUS = "Discovery"


# ═════════════════════════════════════════════════════════════════════════════
# Data Classes
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class UseCaseSnapshot:
    """Read-only view of the use-case fields the gates inspect.

    ``attributes`` carries every other named field (deployment status,
    RAI risk tier, ...) so phase data requirements can be resolved by name.
    """
    primary_business_owner: str | None = None
    business_function: str | None = None
    use_case_status: str | None = None
    revenue_impact: Any = None
    cost_savings: Any = None
    risk_reduction: Any = None
    broker_partner_experience: Any = None
    strategic_fit: Any = None
    explainability_required: bool | None = None
    customer_harm_risk: str | None = None
    human_accountability: bool | None = None
    data_outside_uk_eu: bool | None = None
    third_party_model: bool | None = None
    created_at: datetime | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes or {})))

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.name != "attributes")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "UseCaseSnapshot":
        """Split a flat record into known gate fields and free attributes."""
        known = cls.field_names()
        kwargs = {k: data[k] for k in known if k in data}
        extra = {k: v for k, v in data.items() if k not in known and k != "attributes"}
        extra.update(data.get("attributes") or {})
        return cls(**kwargs, attributes=extra)

    def get(self, name: str, default: Any = None) -> Any:
        if name in self.field_names():
            return getattr(self, name)
        return self.attributes.get(name, default)

    def merged(self, updates: Mapping[str, Any] | None) -> "UseCaseSnapshot":
        """Return a new snapshot with ``updates`` applied; self is untouched."""
        if not updates:
            return self
        known = self.field_names()
        changes = {k: v for k, v in updates.items() if k in known}
        attrs = dict(self.attributes)
        attrs.update({k: v for k, v in updates.items() if k not in known and k != "attributes"})
        attrs.update(updates.get("attributes") or {})
        return replace(self, **changes, attributes=attrs)

    def to_dict(self) -> dict:
        out = {name: getattr(self, name) for name in self.field_names()}
        if self.created_at is not None:
            out["created_at"] = self.created_at.isoformat()
        out.update(self.attributes)
        return out


@dataclass
class GateResult:
    """Outcome of a single governance gate."""
    gate_id: str
    name: str
    passed: bool
    missing_fields: list[str] = field(default_factory=list)
    progress: int = 0
    blocked_by: str | None = None

    def to_dict(self) -> dict:
        return {
            "gate_id": self.gate_id,
            "name": self.name,
            "passed": self.passed,
            "missing_fields": list(self.missing_fields),
            "progress": self.progress,
            "blocked_by": self.blocked_by,
        }


@dataclass
class GovernanceCheckResult:
    """Aggregate of the three gates, in evaluation order."""
    operating_model: GateResult
    intake: GateResult
    responsible_ai: GateResult
    missing_fields: list[str] = field(default_factory=list)
    overall_progress: int = 0

    @property
    def gates(self) -> tuple[GateResult, GateResult, GateResult]:
        return (self.operating_model, self.intake, self.responsible_ai)

    @property
    def can_activate(self) -> bool:
        return all(g.passed for g in self.gates)

    @property
    def governance_status(self) -> str:
        return "complete" if self.can_activate else "incomplete"

    def gate_flags(self) -> dict[str, bool]:
        """Gate id → passed, the shape phase requirements resolve against."""
        return {g.gate_id: g.passed for g in self.gates}

    def to_dict(self) -> dict:
        return {
            "can_activate": self.can_activate,
            "governance_status": self.governance_status,
            "gates": {g.gate_id: g.to_dict() for g in self.gates},
            "missing_fields": list(self.missing_fields),
            "overall_progress": self.overall_progress,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Field predicates
# ═════════════════════════════════════════════════════════════════════════════

def is_populated(value: Any) -> bool:
    """True unless the value is None, a blank string, or an empty collection."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return True


def is_valid_score(value: Any) -> bool:
    # bool is an int subclass; True must not count as a score of 1
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return SCORE_MIN <= value <= SCORE_MAX


def _progress(satisfied: int, total: int) -> int:
    return round(satisfied / total * 100) if total else 0


def _blocked(gate_id: str, blocked_by: str) -> GateResult:
    return GateResult(
        gate_id=gate_id,
        name=GATE_NAMES[gate_id],
        passed=False,
        missing_fields=[],
        progress=0,
        blocked_by=blocked_by,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Gate evaluators
# ═════════════════════════════════════════════════════════════════════════════

def evaluate_operating_model_gate(snapshot: UseCaseSnapshot) -> GateResult:
    """Gate 1 — ownership and a status past Discovery."""
    missing = []
    if not is_populated(snapshot.primary_business_owner):
        missing.append("primary_business_owner")
    if not is_populated(snapshot.business_function):
        missing.append("business_function")
    status = snapshot.use_case_status
    if not is_populated(status) or status == PRE_INTAKE_STATUS:
        missing.append("use_case_status")

    total = len(OPERATING_MODEL_FIELDS)
    return GateResult(
        gate_id=GATE_OPERATING_MODEL,
        name=GATE_NAMES[GATE_OPERATING_MODEL],
        passed=not missing,
        missing_fields=missing,
        progress=_progress(total - len(missing), total),
    )


def evaluate_intake_gate(snapshot: UseCaseSnapshot) -> GateResult:
    """Gate 2 — all business-value scores present and in range."""
    missing = [name for name in SCORE_FIELDS if not is_valid_score(getattr(snapshot, name))]
    total = len(SCORE_FIELDS)
    return GateResult(
        gate_id=GATE_INTAKE,
        name=GATE_NAMES[GATE_INTAKE],
        passed=not missing,
        missing_fields=missing,
        progress=_progress(total - len(missing), total),
    )


def evaluate_responsible_ai_gate(snapshot: UseCaseSnapshot) -> GateResult:
    """Gate 3 — every attestation answered; False is an answer."""
    missing = [name for name in RAI_FIELDS if not is_populated(getattr(snapshot, name))]
    total = len(RAI_FIELDS)
    return GateResult(
        gate_id=GATE_RESPONSIBLE_AI,
        name=GATE_NAMES[GATE_RESPONSIBLE_AI],
        passed=not missing,
        missing_fields=missing,
        progress=_progress(total - len(missing), total),
    )


def perform_full_governance_check(snapshot: UseCaseSnapshot) -> GovernanceCheckResult:
    """Evaluate Gate 1 → 2 → 3 with sequential gating."""
    gate1 = evaluate_operating_model_gate(snapshot)
    if gate1.passed:
        gate2 = evaluate_intake_gate(snapshot)
    else:
        gate2 = _blocked(GATE_INTAKE, GATE_OPERATING_MODEL)
    if gate2.passed:
        gate3 = evaluate_responsible_ai_gate(snapshot)
    else:
        gate3 = _blocked(GATE_RESPONSIBLE_AI, gate2.blocked_by or GATE_INTAKE)

    missing = gate1.missing_fields + gate2.missing_fields + gate3.missing_fields
    overall = round((gate1.progress + gate2.progress + gate3.progress) / 3)

    result = GovernanceCheckResult(
        operating_model=gate1,
        intake=gate2,
        responsible_ai=gate3,
        missing_fields=missing,
        overall_progress=overall,
    )
    logger.debug(
        "Governance check: status=%s progress=%d missing=%s",
        result.governance_status, overall, missing,
    )
    return result
