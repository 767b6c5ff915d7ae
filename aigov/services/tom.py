"""
Target Operating Model (TOM) phase configuration.

A TOM is an ordered list of delivery phases. Each phase maps use-case
statuses / deployment statuses onto itself, declares the data it needs on
entry and exit, and lists the phases it may move to directly.

    derive_phase()          status + deployment (+ manual override) → phase
    ensure_tom_config()     stored JSON → TomConfig with defaults filled in
    get_requirement_label() field / gate id → human-readable label
"""

from __future__ import annotations

import copy
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping

from aigov.services.governance_rules import (
    GATE_INTAKE,
    GATE_NAMES,
    GATE_OPERATING_MODEL,
    GATE_RESPONSIBLE_AI,
)
from aigov.utils.helpers import parse_bool_flag

logger = logging.getLogger(__name__)

DISABLED_PHASE_ID = "disabled"
UNMAPPED_PHASE_ID = "unmapped"
PSEUDO_PHASE_IDS = frozenset({DISABLED_PHASE_ID, UNMAPPED_PHASE_ID})


@dataclass
class TomPhase:
    id: str
    name: str
    description: str = ""
    order: int = 0
    priority: int = 0
    color: str = "#6B7280"
    mapped_statuses: list[str] = field(default_factory=list)
    mapped_deployments: list[str] = field(default_factory=list)
    manual_only: bool = False
    governance_body: str = "none"
    expected_duration_weeks: int | None = None
    data_requirements: dict[str, list[str]] = field(
        default_factory=lambda: {"entry": [], "exit": []}
    )
    allowed_transitions: list[str] = field(default_factory=list)

    @property
    def entry_requirements(self) -> list[str]:
        return list(self.data_requirements.get("entry") or [])

    @property
    def exit_requirements(self) -> list[str]:
        return list(self.data_requirements.get("exit") or [])

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TomPhase":
        reqs = data.get("data_requirements") or {}
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            description=data.get("description", ""),
            order=int(data.get("order", 0)),
            priority=int(data.get("priority", data.get("order", 0))),
            color=data.get("color", "#6B7280"),
            mapped_statuses=list(data.get("mapped_statuses") or []),
            mapped_deployments=list(data.get("mapped_deployments") or []),
            manual_only=bool(parse_bool_flag(data.get("manual_only"))),
            governance_body=data.get("governance_body", "none"),
            expected_duration_weeks=data.get("expected_duration_weeks"),
            data_requirements={
                "entry": list(reqs.get("entry") or []),
                "exit": list(reqs.get("exit") or []),
            },
            allowed_transitions=list(data.get("allowed_transitions") or []),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TomConfig:
    enabled: bool = True
    active_preset: str = "coe_led"
    phases: list[TomPhase] = field(default_factory=list)
    governance_bodies: list[dict] = field(default_factory=list)

    def get_phase(self, phase_id: str | None) -> TomPhase | None:
        if not phase_id:
            return None
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        return None

    def ordered_phases(self) -> list[TomPhase]:
        return sorted(self.phases, key=lambda p: p.order)

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "active_preset": self.active_preset,
            "phases": [p.to_dict() for p in self.ordered_phases()],
            "governance_bodies": copy.deepcopy(self.governance_bodies),
        }


@dataclass
class DerivedPhase:
    id: str
    name: str
    color: str
    is_override: bool
    matched_by: str  # status | deployment | priority | manual | disabled | unmapped

    def to_dict(self) -> dict:
        return asdict(self)


# ═════════════════════════════════════════════════════════════════════════════
# Defaults
# ═════════════════════════════════════════════════════════════════════════════

DEFAULT_TOM_PHASES: list[dict] = [
    {
        "id": "foundation",
        "name": "Foundation",
        "description": "Initial setup, governance alignment, and backlog grooming",
        "order": 1,
        "priority": 1,
        "color": "#3C2CDA",
        "mapped_statuses": ["Discovery", "Backlog", "On Hold"],
        "mapped_deployments": [],
        "manual_only": False,
        "governance_body": "ai_steerco",
        "expected_duration_weeks": 8,
        "data_requirements": {
            "entry": [],
            "exit": ["primary_business_owner", "business_function", GATE_OPERATING_MODEL],
        },
        "allowed_transitions": ["strategic"],
    },
    {
        "id": "strategic",
        "name": "Strategic",
        "description": "Active development, pilots, and value validation",
        "order": 2,
        "priority": 2,
        "color": "#1D86FF",
        "mapped_statuses": ["In-flight"],
        "mapped_deployments": ["PoC", "Pilot"],
        "manual_only": False,
        "governance_body": "working_group",
        "expected_duration_weeks": 16,
        "data_requirements": {
            "entry": [GATE_OPERATING_MODEL],
            "exit": [GATE_INTAKE, GATE_RESPONSIBLE_AI, "rai_risk_tier"],
        },
        "allowed_transitions": ["foundation", "transition"],
    },
    {
        "id": "transition",
        "name": "Transition",
        "description": "Production deployment and capability transfer in progress",
        "order": 3,
        "priority": 3,
        "color": "#14CBDE",
        "mapped_statuses": ["Implemented"],
        "mapped_deployments": ["Production"],
        "manual_only": False,
        "governance_body": "business_owner",
        "expected_duration_weeks": 12,
        "data_requirements": {
            "entry": [GATE_RESPONSIBLE_AI],
            "exit": ["selected_kpis", "target_independence"],
        },
        "allowed_transitions": ["strategic", "steady_state"],
    },
    {
        "id": "steady_state",
        "name": "Steady State",
        "description": "Full client ownership, optimization mode",
        "order": 4,
        "priority": 4,
        "color": "#07125E",
        "mapped_statuses": [],
        "mapped_deployments": [],
        "manual_only": True,
        "governance_body": "none",
        "expected_duration_weeks": None,
        "data_requirements": {"entry": ["target_independence"], "exit": []},
        "allowed_transitions": ["transition"],
    },
]

DEFAULT_GOVERNANCE_BODIES: list[dict] = [
    {"id": "ai_steerco", "name": "AI Steering Committee",
     "role": "Strategic oversight and investment decisions", "cadence": "Monthly"},
    {"id": "working_group", "name": "AI Working Group",
     "role": "Tactical execution and prioritization", "cadence": "Bi-weekly"},
    {"id": "business_owner", "name": "Business Owner Review",
     "role": "Value validation and adoption sign-off", "cadence": "Weekly"},
]


def default_tom_config() -> TomConfig:
    return TomConfig(
        enabled=True,
        active_preset="coe_led",
        phases=[TomPhase.from_dict(p) for p in DEFAULT_TOM_PHASES],
        governance_bodies=copy.deepcopy(DEFAULT_GOVERNANCE_BODIES),
    )


def ensure_tom_config(config: TomConfig | Mapping[str, Any] | None) -> TomConfig:
    """Build a TomConfig from stored JSON, filling anything missing from defaults.

    ``enabled`` may arrive as the legacy 'true'/'false' string; it is coerced
    here so nothing downstream compares against strings.
    """
    if isinstance(config, TomConfig):
        return config
    defaults = default_tom_config()
    if not config:
        return defaults

    enabled = parse_bool_flag(config.get("enabled"))
    phases_raw = config.get("phases")
    return TomConfig(
        enabled=defaults.enabled if enabled is None else enabled,
        active_preset=config.get("active_preset") or defaults.active_preset,
        phases=[TomPhase.from_dict(p) for p in phases_raw] if phases_raw else defaults.phases,
        governance_bodies=list(config.get("governance_bodies") or defaults.governance_bodies),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Phase derivation
# ═════════════════════════════════════════════════════════════════════════════

def _derived(phase: TomPhase, matched_by: str, is_override: bool = False) -> DerivedPhase:
    return DerivedPhase(
        id=phase.id, name=phase.name, color=phase.color,
        is_override=is_override, matched_by=matched_by,
    )


def derive_phase(
    use_case_status: str | None,
    deployment_status: str | None,
    tom_phase_override: str | None,
    config: TomConfig | Mapping[str, Any] | None,
) -> DerivedPhase:
    """Resolve the TOM phase of a use case.

    Order: disabled TOM → manual override → unique status match →
    deployment tie-break among status matches → lowest priority value.
    Manual-only phases are reachable through the override alone.
    """
    config = ensure_tom_config(config)
    if not config.enabled:
        return DerivedPhase(DISABLED_PHASE_ID, "TOM Disabled", "#6B7280", False, "disabled")

    if tom_phase_override:
        phase = config.get_phase(tom_phase_override)
        if phase is not None:
            return _derived(phase, "manual", is_override=True)

    matching = [
        p for p in config.phases
        if not p.manual_only and use_case_status and use_case_status in p.mapped_statuses
    ]
    if not matching:
        return DerivedPhase(UNMAPPED_PHASE_ID, "Unmapped", "#9CA3AF", False, "unmapped")
    if len(matching) == 1:
        return _derived(matching[0], "status")

    if deployment_status:
        for phase in matching:
            if deployment_status in phase.mapped_deployments:
                return _derived(phase, "deployment")

    return _derived(min(matching, key=lambda p: p.priority), "priority")


# ═════════════════════════════════════════════════════════════════════════════
# Requirement labels
# ═════════════════════════════════════════════════════════════════════════════

REQUIREMENT_LABELS: dict[str, str] = {
    "title": "Title",
    "description": "Description",
    "primary_business_owner": "Primary Business Owner",
    "business_function": "Business Function",
    "use_case_status": "Use Case Status",
    "revenue_impact": "Revenue Impact Score",
    "cost_savings": "Cost Savings Score",
    "risk_reduction": "Risk Reduction Score",
    "broker_partner_experience": "Broker/Partner Experience Score",
    "strategic_fit": "Strategic Fit Score",
    "rai_risk_tier": "RAI Risk Tier",
    "investment_cost_gbp": "Investment Cost (GBP)",
    "selected_kpis": "Selected KPIs",
    "target_independence": "Target Independence",
    GATE_OPERATING_MODEL: f"{GATE_NAMES[GATE_OPERATING_MODEL]} Gate",
    GATE_INTAKE: f"{GATE_NAMES[GATE_INTAKE]} Gate",
    GATE_RESPONSIBLE_AI: f"{GATE_NAMES[GATE_RESPONSIBLE_AI]} Gate",
}


def get_requirement_label(requirement: str) -> str:
    """Human-readable label; unknown keys fall back to title-cased words."""
    if requirement in REQUIREMENT_LABELS:
        return REQUIREMENT_LABELS[requirement]
    return requirement.replace("_", " ").strip().title()
