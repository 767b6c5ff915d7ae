"""
Capability Transition — benchmark-driven staffing / independence forecast.

Derives a vendor → client capability-transfer forecast for one use case from
four categorical attributes:

    TOM phase × operating model  → archetype (independence range, FTE split, duration)
    quadrant                     → pace modifier (Quick Win faster, Watchlist slower)
    t-shirt size                 → base FTE
    deployment status            → baseline independence, KT milestones completed

Manually edited forecasts (``derived=False``) are never recomputed silently;
see ``should_recalculate_capability``.
"""

from __future__ import annotations

import calendar
import copy
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

from aigov.utils.helpers import parse_bool_flag

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Benchmark table
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Archetype:
    """Staffing / independence profile for one phase × delivery-model pair."""
    independence_range: tuple[int, int]
    vendor_fte_multiplier: float
    client_fte_multiplier: float
    transition_months: int

    def __post_init__(self):
        lo, hi = self.independence_range
        if not 0 <= lo <= hi <= 100:
            raise ValueError(f"independence_range must be ordered within [0, 100], got {self.independence_range}")
        if abs(self.vendor_fte_multiplier + self.client_fte_multiplier - 1.0) > 1e-9:
            raise ValueError("vendor and client FTE multipliers must sum to 1.0")
        if self.transition_months <= 0:
            raise ValueError("transition_months must be positive")

    def clamp(self, value: float) -> float:
        lo, hi = self.independence_range
        return max(lo, min(hi, value))

    def to_dict(self) -> dict:
        return {
            "independence_range": list(self.independence_range),
            "vendor_fte_multiplier": self.vendor_fte_multiplier,
            "client_fte_multiplier": self.client_fte_multiplier,
            "transition_months": self.transition_months,
        }


@dataclass(frozen=True)
class CapabilityBenchmarkConfig:
    """Immutable lookup tables shared by every derivation."""
    archetypes: Mapping[str, Archetype]
    pace_modifiers: Mapping[str, float]
    t_shirt_base_fte: Mapping[str, float]

    def __post_init__(self):
        for name in ("archetypes", "pace_modifiers", "t_shirt_base_fte"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def to_dict(self) -> dict:
        return {
            "archetypes": {k: a.to_dict() for k, a in self.archetypes.items()},
            "pace_modifiers": dict(self.pace_modifiers),
            "t_shirt_base_fte": dict(self.t_shirt_base_fte),
        }


DEFAULT_BENCHMARK_CONFIG = CapabilityBenchmarkConfig(
    archetypes={
        "foundation_centralized": Archetype((0, 15), 0.9, 0.1, 24),
        "foundation_coe": Archetype((0, 20), 0.8, 0.2, 18),
        "strategic_centralized": Archetype((15, 35), 0.7, 0.3, 18),
        "strategic_hybrid": Archetype((25, 50), 0.6, 0.4, 15),
        "transition_centralized": Archetype((40, 70), 0.45, 0.55, 12),
        "transition_hybrid": Archetype((50, 85), 0.35, 0.65, 9),
        "steady_state_centralized": Archetype((75, 95), 0.15, 0.85, 6),
        "steady_state_federated": Archetype((85, 100), 0.1, 0.9, 3),
    },
    pace_modifiers={
        "Quick Win": 0.75,
        "Strategic Bet": 1.25,
        "Experimental": 1.0,
        "Watchlist": 1.5,
    },
    t_shirt_base_fte={"XS": 1, "S": 2, "M": 4, "L": 6, "XL": 10},
)

DEFAULT_ARCHETYPE = "foundation_coe"

# Phase substring → archetype prefix, checked in this order
_PHASE_PREFIXES = (
    ("steady", "steady_state"),
    ("transition", "transition"),
    ("strategic", "strategic"),
    ("foundation", "foundation"),
)

# Non-centralized delivery variant per phase prefix
_DISTRIBUTED_VARIANT = {
    "foundation": "foundation_coe",
    "strategic": "strategic_hybrid",
    "transition": "transition_hybrid",
    "steady_state": "steady_state_federated",
}

# Baseline independence and KT milestones completed, by deployment status
DEPLOYMENT_INDEPENDENCE = {"Production": 65, "Pilot": 40, "PoC": 20}
DEFAULT_INDEPENDENCE = 10
DEPLOYMENT_KT_COMPLETED = {"Production": 4, "Pilot": 2, "PoC": 1}

PLANNED_CHECKPOINTS = (("month6", 0.25), ("month12", 0.6), ("month18", 0.85))
ADVISORY_FLOOR_FTE = 0.5
TRAINING_HOURS_PER_FTE = 20
TARGET_INDEPENDENCE = 90
ADVISORY_RETAINER_THRESHOLD = 75

DEFAULT_T_SHIRT_SIZE = "M"
DEFAULT_OPERATING_MODEL = "coe_led"
QUADRANT_THRESHOLD = 2.5

IMPACT_LEVERS = ("revenue_impact", "cost_savings", "risk_reduction", "broker_partner_experience", "strategic_fit")
EFFORT_LEVERS = ("data_readiness", "technical_complexity", "change_impact", "model_risk", "adoption_readiness")


# ═════════════════════════════════════════════════════════════════════════════
# Transition config (milestones, targets) — stored, admin-editable
# ═════════════════════════════════════════════════════════════════════════════

DEFAULT_KT_MILESTONES: list[dict] = [
    {"id": "kt_001", "name": "Solution Design Handover", "phase": "foundation", "order": 1,
     "description": "Client team understands architecture and design decisions",
     "required_artifacts": ["Architecture diagram", "Design decisions doc"]},
    {"id": "kt_002", "name": "Development Shadowing Complete", "phase": "strategic", "order": 2,
     "description": "Client developers have paired on all major components",
     "required_artifacts": ["Pairing log", "Code walkthrough recordings"]},
    {"id": "kt_003", "name": "Operations Handover", "phase": "strategic", "order": 3,
     "description": "Client ops team can deploy, monitor, and troubleshoot",
     "required_artifacts": ["Runbook", "Monitoring dashboard access"]},
    {"id": "kt_004", "name": "First Client-Led Release", "phase": "transition", "order": 4,
     "description": "Client team completes a release without vendor assistance",
     "required_artifacts": ["Release notes", "Post-release review"]},
    {"id": "kt_005", "name": "Model Retraining Capability", "phase": "transition", "order": 5,
     "description": "Client team can retrain and deploy model updates",
     "required_artifacts": ["Retraining procedure", "Model registry access"]},
    {"id": "kt_006", "name": "Full Independence Certification", "phase": "steady_state", "order": 6,
     "description": "Client team certified to operate without vendor support",
     "required_artifacts": ["Capability assessment", "Sign-off document"]},
]

DEFAULT_INDEPENDENCE_TARGETS: dict[str, dict] = {
    "foundation": {"min": 0, "max": 20, "description": "Vendor-led, client observing"},
    "strategic": {"min": 20, "max": 50, "description": "Joint execution, client learning"},
    "transition": {"min": 50, "max": 85, "description": "Client-led, vendor supporting"},
    "steady_state": {"min": 85, "max": 100, "description": "Client self-sufficient"},
}

DEFAULT_CERTIFICATIONS: list[dict] = [
    {"id": "cert_001", "name": "AI/ML Foundations", "estimated_hours": 16},
    {"id": "cert_002", "name": "Platform Operations", "estimated_hours": 24},
    {"id": "cert_003", "name": "Model Development", "estimated_hours": 40},
    {"id": "cert_004", "name": "AI Governance & Ethics", "estimated_hours": 8},
]


@dataclass
class CapabilityTransitionConfig:
    enabled: bool = True
    independence_targets: dict[str, dict] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_INDEPENDENCE_TARGETS)
    )
    knowledge_transfer_milestones: list[dict] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_KT_MILESTONES)
    )
    certifications: list[dict] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_CERTIFICATIONS)
    )

    def ordered_milestones(self) -> list[dict]:
        return sorted(self.knowledge_transfer_milestones, key=lambda m: m.get("order", 0))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "CapabilityTransitionConfig":
        if not data:
            return cls()
        defaults = cls()
        enabled = parse_bool_flag(data.get("enabled"))
        return cls(
            enabled=defaults.enabled if enabled is None else enabled,
            independence_targets=dict(data.get("independence_targets") or defaults.independence_targets),
            knowledge_transfer_milestones=list(
                data.get("knowledge_transfer_milestones") or defaults.knowledge_transfer_milestones
            ),
            certifications=list(data.get("certifications") or defaults.certifications),
        )

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "independence_targets": copy.deepcopy(self.independence_targets),
            "knowledge_transfer_milestones": copy.deepcopy(self.knowledge_transfer_milestones),
            "certifications": copy.deepcopy(self.certifications),
        }


DEFAULT_TRANSITION_CONFIG = CapabilityTransitionConfig()


# ═════════════════════════════════════════════════════════════════════════════
# Per-use-case forecast record
# ═════════════════════════════════════════════════════════════════════════════

def _empty_staffing() -> dict:
    return {
        "current": {
            "vendor": {"total": 0, "by_role": {}},
            "client": {"total": 0, "by_role": {}},
        },
        "planned": {name: {"vendor": 0, "client": 0} for name, _ in PLANNED_CHECKPOINTS},
    }


def _empty_knowledge_transfer() -> dict:
    return {"completed_milestones": [], "in_progress_milestones": [], "milestone_notes": {}}


def _empty_training() -> dict:
    return {
        "completed_certifications": [],
        "planned_certifications": [],
        "total_training_hours_completed": 0,
        "total_training_hours_planned": 0,
    }


def _empty_target() -> dict:
    return {"target_date": "", "target_independence": TARGET_INDEPENDENCE, "advisory_retainer": False}


@dataclass
class UseCaseCapabilityTransition:
    independence_percentage: float = 0
    independence_history: list[dict] = field(default_factory=list)
    staffing: dict = field(default_factory=_empty_staffing)
    knowledge_transfer: dict = field(default_factory=_empty_knowledge_transfer)
    training: dict = field(default_factory=_empty_training)
    self_sufficiency_target: dict = field(default_factory=_empty_target)
    derived: bool | None = None
    derived_at: str | None = None
    derived_from: dict | None = None
    archetype: str | None = None

    @property
    def vendor_fte(self) -> float:
        return self.staffing["current"]["vendor"]["total"]

    @property
    def client_fte(self) -> float:
        return self.staffing["current"]["client"]["total"]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UseCaseCapabilityTransition":
        """Load a stored record; missing sections fall back to empty defaults."""
        data = copy.deepcopy(dict(data))
        staffing = _empty_staffing()
        stored_staffing = data.get("staffing") or {}
        for side in ("vendor", "client"):
            staffing["current"][side].update((stored_staffing.get("current") or {}).get(side) or {})
        for name, _ in PLANNED_CHECKPOINTS:
            staffing["planned"][name].update((stored_staffing.get("planned") or {}).get(name) or {})

        target = _empty_target()
        target.update(data.get("self_sufficiency_target") or {})
        target["advisory_retainer"] = bool(parse_bool_flag(target.get("advisory_retainer")))

        return cls(
            independence_percentage=data.get("independence_percentage") or 0,
            independence_history=list(data.get("independence_history") or []),
            staffing=staffing,
            knowledge_transfer={**_empty_knowledge_transfer(), **(data.get("knowledge_transfer") or {})},
            training={**_empty_training(), **(data.get("training") or {})},
            self_sufficiency_target=target,
            derived=data.get("derived"),
            derived_at=data.get("derived_at"),
            derived_from=data.get("derived_from"),
            archetype=data.get("archetype"),
        )

    def to_dict(self) -> dict:
        return copy.deepcopy({
            "independence_percentage": self.independence_percentage,
            "independence_history": self.independence_history,
            "staffing": self.staffing,
            "knowledge_transfer": self.knowledge_transfer,
            "training": self.training,
            "self_sufficiency_target": self.self_sufficiency_target,
            "derived": self.derived,
            "derived_at": self.derived_at,
            "derived_from": self.derived_from,
            "archetype": self.archetype,
        })


def as_capability(value: UseCaseCapabilityTransition | Mapping[str, Any] | None) -> UseCaseCapabilityTransition | None:
    if value is None or isinstance(value, UseCaseCapabilityTransition):
        return value
    return UseCaseCapabilityTransition.from_dict(value)


# ═════════════════════════════════════════════════════════════════════════════
# Input normalization
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DerivationInput:
    """Fully-defaulted attributes the derivation steps read."""
    tom_phase: str | None
    quadrant: str
    t_shirt_size: str
    operating_model: str
    deployment_status: str | None


def _mean_score(record: Mapping[str, Any], explicit: str, levers: tuple[str, ...]) -> float:
    value = record.get(explicit)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    scores = [
        record[name] for name in levers
        if isinstance(record.get(name), (int, float)) and not isinstance(record.get(name), bool)
    ]
    return sum(scores) / len(scores) if scores else 0.0


def derive_quadrant(impact: float, effort: float) -> str:
    if impact >= QUADRANT_THRESHOLD:
        return "Quick Win" if effort < QUADRANT_THRESHOLD else "Strategic Bet"
    return "Experimental" if effort < QUADRANT_THRESHOLD else "Watchlist"


def normalize_derivation_input(use_case: Mapping[str, Any]) -> DerivationInput:
    """Fill every derivation default once, before any rule runs."""
    quadrant = use_case.get("quadrant")
    if not quadrant:
        impact = _mean_score(use_case, "impact_score", IMPACT_LEVERS)
        effort = _mean_score(use_case, "effort_score", EFFORT_LEVERS)
        quadrant = derive_quadrant(impact, effort)
    return DerivationInput(
        tom_phase=use_case.get("tom_phase") or None,
        quadrant=quadrant,
        t_shirt_size=use_case.get("t_shirt_size") or DEFAULT_T_SHIRT_SIZE,
        operating_model=use_case.get("operating_model") or DEFAULT_OPERATING_MODEL,
        deployment_status=use_case.get("deployment_status") or None,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Derivation steps
# ═════════════════════════════════════════════════════════════════════════════

def select_archetype_key(tom_phase: str | None, operating_model: str | None) -> str:
    phase = (tom_phase or "").lower()
    prefix = next((p for needle, p in _PHASE_PREFIXES if needle in phase), None)
    if prefix is None:
        return DEFAULT_ARCHETYPE
    if "centralized" in (operating_model or "").lower():
        return f"{prefix}_centralized"
    return _DISTRIBUTED_VARIANT[prefix]


def calculate_staffing(base_fte: float, archetype: Archetype, pace: float) -> dict:
    """Current split plus 6/12/18-month plan; total FTE is the same at every point."""
    vendor = round(base_fte * archetype.vendor_fte_multiplier, 1)
    client = round(base_fte - vendor, 1)
    rate = 1 / pace

    planned = {}
    for name, fraction in PLANNED_CHECKPOINTS:
        planned_vendor = vendor * (1 - min(1.0, fraction * rate))
        floor = min(ADVISORY_FLOOR_FTE, base_fte) if name == "month18" else 0.0
        planned_vendor = round(max(floor, planned_vendor), 1)
        planned[name] = {"vendor": planned_vendor, "client": round(base_fte - planned_vendor, 1)}

    return {
        "current": {
            "vendor": {"total": vendor, "by_role": {}},
            "client": {"total": client, "by_role": {}},
        },
        "planned": planned,
    }


def calculate_knowledge_transfer(deployment_status: str | None, config: CapabilityTransitionConfig) -> dict:
    ids = [m["id"] for m in config.ordered_milestones()]
    completed = min(DEPLOYMENT_KT_COMPLETED.get(deployment_status, 0), len(ids))
    return {
        "completed_milestones": ids[:completed],
        "in_progress_milestones": ids[completed:completed + 1],
        "milestone_notes": {},
    }


def add_months(value: datetime, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def derive_capability_defaults(
    use_case: Mapping[str, Any],
    transition_config: CapabilityTransitionConfig = DEFAULT_TRANSITION_CONFIG,
    benchmark_config: CapabilityBenchmarkConfig = DEFAULT_BENCHMARK_CONFIG,
    *,
    now: datetime | None = None,
    existing: UseCaseCapabilityTransition | Mapping[str, Any] | None = None,
) -> UseCaseCapabilityTransition:
    """Compute a fresh capability-transition forecast for one use case.

    ``existing`` (defaults to ``use_case["capability_transition"]``) only
    contributes its independence history; everything else is recomputed.
    Raises ValueError for a t-shirt size missing from the benchmark table.
    """
    now = now or datetime.now(timezone.utc)
    inputs = normalize_derivation_input(use_case)

    archetype_key = select_archetype_key(inputs.tom_phase, inputs.operating_model)
    archetype = benchmark_config.archetypes[archetype_key]
    pace = benchmark_config.pace_modifiers.get(inputs.quadrant, 1.0)

    if inputs.t_shirt_size not in benchmark_config.t_shirt_base_fte:
        raise ValueError(f"Unknown t-shirt size: {inputs.t_shirt_size!r}")
    base_fte = benchmark_config.t_shirt_base_fte[inputs.t_shirt_size]

    staffing = calculate_staffing(base_fte, archetype, pace)
    baseline = DEPLOYMENT_INDEPENDENCE.get(inputs.deployment_status, DEFAULT_INDEPENDENCE)
    independence = archetype.clamp(baseline)

    if existing is None:
        existing = use_case.get("capability_transition")
    previous = as_capability(existing)
    history = list(previous.independence_history) if previous else []
    history.append({
        "date": now.strftime("%Y-%m"),
        "percentage": independence,
        "note": f"Derived from {archetype_key} benchmark",
    })

    target_date = add_months(now, round(archetype.transition_months * pace))

    return UseCaseCapabilityTransition(
        independence_percentage=independence,
        independence_history=history,
        staffing=staffing,
        knowledge_transfer=calculate_knowledge_transfer(inputs.deployment_status, transition_config),
        training={
            "completed_certifications": [],
            "planned_certifications": [],
            "total_training_hours_completed": 0,
            "total_training_hours_planned": base_fte * TRAINING_HOURS_PER_FTE,
        },
        self_sufficiency_target={
            "target_date": target_date.isoformat(),
            "target_independence": TARGET_INDEPENDENCE,
            "advisory_retainer": independence >= ADVISORY_RETAINER_THRESHOLD,
        },
        derived=True,
        derived_at=now.isoformat(),
        derived_from={
            "tom_phase": inputs.tom_phase,
            "quadrant": inputs.quadrant,
            "t_shirt_size": inputs.t_shirt_size,
        },
        archetype=archetype_key,
    )


def should_recalculate_capability(existing: UseCaseCapabilityTransition | Mapping[str, Any] | None) -> bool:
    """Absent or engine-derived → recompute; hand-edited → leave alone."""
    if existing is None:
        return True
    if isinstance(existing, UseCaseCapabilityTransition):
        return existing.derived is True
    return existing.get("derived") is True


# ═════════════════════════════════════════════════════════════════════════════
# Progress helpers & manual edits
# ═════════════════════════════════════════════════════════════════════════════

def calculate_independence_from_staffing(current_staffing: Mapping[str, Any]) -> int:
    vendor = current_staffing["vendor"]["total"]
    client = current_staffing["client"]["total"]
    total = vendor + client
    if total == 0:
        return 0
    return round(client / total * 100)


def calculate_kt_progress(completed_milestones: list[str], total_milestones: int) -> int:
    if total_milestones == 0:
        return 0
    return round(len(completed_milestones) / total_milestones * 100)


def calculate_training_progress(completed_hours: float, planned_hours: float) -> int:
    if planned_hours == 0:
        return 0
    return min(100, round(completed_hours / planned_hours * 100))


def get_phase_from_independence(percentage: float, config: CapabilityTransitionConfig = DEFAULT_TRANSITION_CONFIG) -> str:
    targets = config.independence_targets
    for phase in ("steady_state", "transition", "strategic"):
        if percentage >= targets[phase]["min"]:
            return phase
    return "foundation"


def apply_manual_capability_edit(
    existing: UseCaseCapabilityTransition | Mapping[str, Any] | None,
    edits: Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> UseCaseCapabilityTransition:
    """Apply a human edit; the result is marked ``derived=False``.

    Independence is recomputed from current staffing when staffing is part of
    the edit, and a history entry is appended only if the value changed.
    """
    now = now or datetime.now(timezone.utc)
    base = as_capability(existing) or UseCaseCapabilityTransition()
    merged = base.to_dict()
    merged.update({k: v for k, v in edits.items() if k not in ("derived", "derived_at", "derived_from")})
    updated = UseCaseCapabilityTransition.from_dict(merged)

    previous_pct = base.independence_percentage
    if edits.get("staffing"):
        updated.independence_percentage = calculate_independence_from_staffing(updated.staffing["current"])

    if updated.independence_percentage != previous_pct:
        updated.independence_history.append({
            "date": now.strftime("%Y-%m"),
            "percentage": updated.independence_percentage,
            "note": "Manual update",
        })

    updated.derived = False
    updated.derived_at = base.derived_at
    updated.derived_from = base.derived_from
    return updated
