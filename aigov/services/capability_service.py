"""Capability service layer — config storage, derivation and portfolio roll-ups.

Transaction policy: methods use flush(), never commit().
Caller (route handler) is responsible for db.session.commit().

Wraps the pure engines (``tom``, ``capability_transition``,
``cascade_benchmark_engine``, ``portfolio_capability``) with persistence:
configuration lives on the MetadataConfig singleton, forecasts on
``UseCase.capability_transition``.
"""
import logging

from aigov.core.exceptions import ValidationError
from aigov.models import db
from aigov.models.audit import write_audit
from aigov.models.metadata_config import MetadataConfig
from aigov.models.use_case import UseCase
from aigov.services.capability_transition import (
    CapabilityTransitionConfig,
    UseCaseCapabilityTransition,
    apply_manual_capability_edit,
    calculate_kt_progress,
    calculate_training_progress,
    get_phase_from_independence,
)
from aigov.services.cascade_benchmark_engine import (
    derive_capability_for_use_case,
    get_capability_population_stats,
    run_cascade_benchmark_derivation,
)
from aigov.services.portfolio_capability import (
    aggregate_portfolio_capability,
    generate_aggregate_staffing_projection,
)
from aigov.services.tom import TomConfig, ensure_tom_config
from aigov.utils.helpers import is_number

logger = logging.getLogger(__name__)


# ── Configuration ────────────────────────────────────────────────────────


def _metadata():
    return MetadataConfig.query.order_by(MetadataConfig.id).first()


def load_tom_config() -> TomConfig:
    row = _metadata()
    return ensure_tom_config(row.tom_config if row else None)


def load_transition_config() -> CapabilityTransitionConfig:
    row = _metadata()
    return CapabilityTransitionConfig.from_dict(row.capability_transition_config if row else None)


def update_tom_config(data: dict, *, actor: str = "system") -> TomConfig:
    if not isinstance(data, dict):
        raise ValidationError("TOM config must be a JSON object")
    try:
        config = ensure_tom_config(data)
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError("Invalid TOM config", details={"error": str(exc)}) from exc

    phase_ids = {p.id for p in config.phases}
    unknown = sorted({t for p in config.phases for t in p.allowed_transitions} - phase_ids)
    if unknown:
        raise ValidationError("Unknown phases in allowed_transitions", details={"phases": unknown})

    row = MetadataConfig.get_or_create()
    row.tom_config = config.to_dict()
    db.session.flush()
    write_audit(entity_type="metadata_config", entity_id=row.id, action="update", actor=actor,
                diff={"tom_config": {"enabled": config.enabled, "phases": sorted(phase_ids)}})
    return config


def update_transition_config(data: dict, *, actor: str = "system") -> CapabilityTransitionConfig:
    if not isinstance(data, dict):
        raise ValidationError("Capability transition config must be a JSON object")
    config = CapabilityTransitionConfig.from_dict(data)
    missing_ids = [m for m in config.knowledge_transfer_milestones if not isinstance(m, dict) or not m.get("id")]
    if missing_ids:
        raise ValidationError("Every knowledge transfer milestone needs an id")

    row = MetadataConfig.get_or_create()
    row.capability_transition_config = config.to_dict()
    db.session.flush()
    write_audit(entity_type="metadata_config", entity_id=row.id, action="update", actor=actor,
                diff={"capability_transition_config": {"enabled": config.enabled}})
    return config


# ── Manual edit validation ───────────────────────────────────────────────

_EDIT_SECTIONS = ("staffing", "knowledge_transfer", "training", "self_sufficiency_target")
_TRAINING_HOURS = ("total_training_hours_completed", "total_training_hours_planned")


def _check_percentage(errors: dict, key: str, value) -> None:
    if not is_number(value) or not 0 <= value <= 100:
        errors[key] = "must be a number between 0 and 100"


def _check_fte(errors: dict, key: str, value) -> None:
    if not is_number(value) or value < 0:
        errors[key] = "must be a non-negative number"


def _validate_staffing(errors: dict, staffing: dict) -> None:
    current = staffing.get("current")
    if current is not None:
        if not isinstance(current, dict):
            errors["staffing.current"] = "must be an object"
        else:
            for side in ("vendor", "client"):
                if side not in current:
                    continue
                entry = current[side]
                if not isinstance(entry, dict):
                    errors[f"staffing.current.{side}"] = "must be an object"
                elif "total" in entry:
                    _check_fte(errors, f"staffing.current.{side}.total", entry["total"])

    planned = staffing.get("planned")
    if planned is not None:
        if not isinstance(planned, dict):
            errors["staffing.planned"] = "must be an object"
            return
        for checkpoint, split in planned.items():
            if not isinstance(split, dict):
                errors[f"staffing.planned.{checkpoint}"] = "must be an object"
                continue
            for side in ("vendor", "client"):
                if side in split:
                    _check_fte(errors, f"staffing.planned.{checkpoint}.{side}", split[side])


def _validate_capability_edit(edits: dict) -> None:
    """Reject hand edits that would store an out-of-range or non-numeric forecast."""
    errors = {}
    if "independence_percentage" in edits:
        _check_percentage(errors, "independence_percentage", edits["independence_percentage"])
    if "independence_history" in edits and not isinstance(edits["independence_history"], list):
        errors["independence_history"] = "must be a list"

    for section in _EDIT_SECTIONS:
        if section in edits and not isinstance(edits[section], dict):
            errors[section] = "must be an object"

    if isinstance(edits.get("staffing"), dict):
        _validate_staffing(errors, edits["staffing"])
    if isinstance(edits.get("training"), dict):
        for key in _TRAINING_HOURS:
            if key in edits["training"]:
                _check_fte(errors, f"training.{key}", edits["training"][key])
    kt = edits.get("knowledge_transfer")
    if isinstance(kt, dict):
        for key in ("completed_milestones", "in_progress_milestones"):
            if key in kt and not isinstance(kt[key], list):
                errors[f"knowledge_transfer.{key}"] = "must be a list"
    target = edits.get("self_sufficiency_target")
    if isinstance(target, dict) and "target_independence" in target:
        _check_percentage(errors, "self_sufficiency_target.target_independence", target["target_independence"])

    if errors:
        raise ValidationError("Invalid capability data", details=errors)


# ── Per use case ─────────────────────────────────────────────────────────


def get_use_case_capability(use_case: UseCase) -> dict:
    """Stored forecast (or an empty one) with progress figures attached."""
    config = load_transition_config()
    capability = UseCaseCapabilityTransition.from_dict(use_case.capability_transition or {})
    out = capability.to_dict()
    out["progress"] = {
        "kt": calculate_kt_progress(
            capability.knowledge_transfer.get("completed_milestones") or [],
            len(config.knowledge_transfer_milestones),
        ),
        "training": calculate_training_progress(
            capability.training.get("total_training_hours_completed") or 0,
            capability.training.get("total_training_hours_planned") or 0,
        ),
        "phase": get_phase_from_independence(capability.independence_percentage, config),
    }
    return out


def derive_use_case_capability(use_case: UseCase, *, force: bool = False, actor: str = "system", now=None) -> dict:
    """Derive one forecast. Hand-edited data is left alone unless ``force``."""
    single = derive_capability_for_use_case(
        use_case.to_derivation_record(),
        load_tom_config(),
        force_recalculate=force,
        now=now,
        transition_config=load_transition_config(),
    )
    if single.skipped:
        return {"status": "skipped", "reason": single.reason, "capability": use_case.capability_transition}

    _store_capability(use_case, single.capability, actor=actor)
    return {"status": "derived", "reason": None, "capability": use_case.capability_transition}


def _store_capability(use_case: UseCase, capability: UseCaseCapabilityTransition, *, actor: str = "system") -> None:
    use_case.capability_transition = capability.to_dict()
    db.session.flush()
    write_audit(
        entity_type="use_case", entity_id=use_case.id, action="capability.derive", actor=actor,
        diff={
            "archetype": capability.archetype,
            "independence_percentage": capability.independence_percentage,
            "derived_from": capability.derived_from,
        },
    )


def update_use_case_capability(use_case: UseCase, edits: dict, *, actor: str = "system", now=None) -> dict:
    """Manual edit; the stored forecast becomes protected from re-derivation."""
    if not isinstance(edits, dict):
        raise ValidationError("Capability data must be a JSON object")
    _validate_capability_edit(edits)
    updated = apply_manual_capability_edit(use_case.capability_transition, edits, now=now)
    use_case.capability_transition = updated.to_dict()
    db.session.flush()
    write_audit(
        entity_type="use_case", entity_id=use_case.id, action="capability.manual_edit", actor=actor,
        diff={"independence_percentage": updated.independence_percentage, "fields": sorted(edits)},
    )
    return use_case.capability_transition


# ── Portfolio ────────────────────────────────────────────────────────────


def _records():
    return [uc.to_derivation_record() for uc in UseCase.query.order_by(UseCase.id).all()]


def derive_all(*, force: bool = False, dry_run: bool = False, actor: str = "system", now=None) -> dict:
    """Batch derivation over every stored use case."""
    use_cases = {uc.id: uc for uc in UseCase.query.order_by(UseCase.id).all()}

    def _update(use_case_id, capability):
        _store_capability(use_cases[use_case_id], capability, actor=actor)

    result = run_cascade_benchmark_derivation(
        [uc.to_derivation_record() for uc in use_cases.values()],
        load_tom_config(),
        _update,
        force_recalculate=force,
        dry_run=dry_run,
        now=now,
        transition_config=load_transition_config(),
    )
    return result.to_dict()


def portfolio_summary(now=None) -> dict:
    return aggregate_portfolio_capability(_records(), load_transition_config(), now=now).to_dict()


def staffing_projection(now=None) -> list[dict]:
    return [p.to_dict() for p in generate_aggregate_staffing_projection(_records(), now=now)]


def population_stats() -> dict:
    return get_capability_population_stats(_records())
