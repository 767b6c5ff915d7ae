"""
AI Use-Case Governance Platform
Use-case domain model.

Models:
    - UseCase: one AI initiative with its governance fields, scores,
      TOM placement and capability-transition forecast.

RAI attestation flags are stored the legacy way ('true' / 'false' strings);
``to_snapshot()`` is the single place they become real booleans.
"""

from datetime import datetime, timezone

from aigov.models import db
from aigov.services.governance_rules import SCORE_FIELDS, UseCaseSnapshot
from aigov.utils.helpers import format_bool_flag, parse_bool_flag


def _utcnow():
    return datetime.now(timezone.utc)


# Flags persisted as 'true' / 'false' text
BOOL_FLAG_FIELDS = (
    "explainability_required",
    "human_accountability",
    "data_outside_uk_eu",
    "third_party_model",
)

EFFORT_FIELDS = (
    "data_readiness",
    "technical_complexity",
    "change_impact",
    "model_risk",
    "adoption_readiness",
)

# Columns a client may set directly through create / update
EDITABLE_FIELDS = (
    "title",
    "description",
    "primary_business_owner",
    "business_function",
    "use_case_status",
    "deployment_status",
    "tom_phase_override",
    "quadrant",
    "t_shirt_size",
    "operating_model",
    "impact_score",
    "effort_score",
    "investment",
    "rai_risk_tier",
    "selected_kpis",
    "customer_harm_risk",
) + SCORE_FIELDS + EFFORT_FIELDS + BOOL_FLAG_FIELDS


class UseCase(db.Model):
    """AI initiative tracked through intake, governance and delivery."""

    __tablename__ = "use_cases"
    __table_args__ = (
        db.Index("idx_use_case_status", "use_case_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")

    # Gate 1 — operating model
    primary_business_owner = db.Column(db.String(150), nullable=True)
    business_function = db.Column(db.String(100), nullable=True)
    use_case_status = db.Column(
        db.String(30), nullable=False, default="Discovery",
        comment="Discovery | Backlog | On Hold | In-flight | Implemented",
    )
    deployment_status = db.Column(
        db.String(30), nullable=True,
        comment="PoC | Pilot | Production | Decommissioned",
    )

    # Gate 2 — business-value scores (1–5)
    revenue_impact = db.Column(db.Integer, nullable=True)
    cost_savings = db.Column(db.Integer, nullable=True)
    risk_reduction = db.Column(db.Integer, nullable=True)
    broker_partner_experience = db.Column(db.Integer, nullable=True)
    strategic_fit = db.Column(db.Integer, nullable=True)

    # Effort levers (1–5)
    data_readiness = db.Column(db.Integer, nullable=True)
    technical_complexity = db.Column(db.Integer, nullable=True)
    change_impact = db.Column(db.Integer, nullable=True)
    model_risk = db.Column(db.Integer, nullable=True)
    adoption_readiness = db.Column(db.Integer, nullable=True)

    impact_score = db.Column(db.Float, nullable=True)
    effort_score = db.Column(db.Float, nullable=True)
    quadrant = db.Column(db.String(30), nullable=True)
    t_shirt_size = db.Column(db.String(5), nullable=True)
    investment = db.Column(db.Float, nullable=True)

    # Gate 3 — responsible AI attestations
    explainability_required = db.Column(db.String(5), nullable=True)
    customer_harm_risk = db.Column(db.String(20), nullable=True)
    human_accountability = db.Column(db.String(5), nullable=True)
    data_outside_uk_eu = db.Column(db.String(5), nullable=True)
    third_party_model = db.Column(db.String(5), nullable=True)
    rai_risk_tier = db.Column(db.String(20), nullable=True)

    # Target operating model
    tom_phase_override = db.Column(db.String(50), nullable=True)
    operating_model = db.Column(db.String(50), nullable=True)
    last_phase_transition_reason = db.Column(db.Text, nullable=True)

    selected_kpis = db.Column(db.JSON, nullable=True)
    capability_transition = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # ── Helpers ──────────────────────────────────────────────────────────

    def set_fields(self, data: dict) -> None:
        """Assign editable fields; boolean flags go back to storage strings."""
        for key in EDITABLE_FIELDS:
            if key not in data:
                continue
            value = data[key]
            if key in BOOL_FLAG_FIELDS:
                value = format_bool_flag(value)
            setattr(self, key, value)

    def flags(self) -> dict:
        return {key: parse_bool_flag(getattr(self, key)) for key in BOOL_FLAG_FIELDS}

    def to_snapshot(self) -> UseCaseSnapshot:
        """Engine view of this record with flags coerced to bool."""
        record = {key: getattr(self, key) for key in EDITABLE_FIELDS}
        record.update(self.flags())
        record["created_at"] = self.created_at
        record["capability_transition"] = self.capability_transition
        target = ((self.capability_transition or {}).get("self_sufficiency_target") or {})
        record["target_independence"] = target.get("target_independence")
        return UseCaseSnapshot.from_mapping(record)

    def to_derivation_record(self) -> dict:
        record = {key: getattr(self, key) for key in EDITABLE_FIELDS}
        record["id"] = self.id
        record["capability_transition"] = self.capability_transition
        return record

    def to_dict(self) -> dict:
        out = {"id": self.id}
        for key in EDITABLE_FIELDS:
            out[key] = getattr(self, key)
        out.update(self.flags())
        out["last_phase_transition_reason"] = self.last_phase_transition_reason
        out["capability_transition"] = self.capability_transition
        out["created_at"] = self.created_at.isoformat() if self.created_at else None
        out["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return out

    def __repr__(self):
        return f"<UseCase {self.id}: {self.title} [{self.use_case_status}]>"
