"""Use-case service layer — CRUD plus the governed record-update path.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().

Update path (``update_use_case``):
1. Activation guard — a move into In-flight / Implemented needs all gates.
2. Phase validator — when the TOM is enabled and the derived phase changes,
   unmet exit requirements need a justification.
3. Regression detector — an edit to an active record that breaks Gate 1
   sends it back to Backlog (legacy records only get a warning).
"""
import logging
from datetime import datetime

from flask import current_app

from aigov.core.exceptions import (
    GovernanceBlockedError,
    NotFoundError,
    PhaseTransitionJustificationRequired,
    ValidationError,
)
from aigov.models import db
from aigov.models.audit import write_audit
from aigov.models.use_case import BOOL_FLAG_FIELDS, EDITABLE_FIELDS, EFFORT_FIELDS, UseCase
from aigov.services import capability_service
from aigov.services.capability_transition import DEFAULT_BENCHMARK_CONFIG
from aigov.services.governance_enforcement import (
    DEACTIVATED_STATUS,
    GOVERNANCE_ENFORCEMENT_DATE,
    build_activation_blocked_response,
    build_phase_transition_required_response,
    check_activation_allowed,
    check_governance_regression,
    check_phase_transition_requirements,
    is_activation_status,
)
from aigov.services.governance_rules import (
    SCORE_FIELDS,
    UseCaseSnapshot,
    is_valid_score,
    perform_full_governance_check,
)
from aigov.services.tom import derive_phase
from aigov.utils.helpers import is_number, parse_bool_flag, parse_datetime

logger = logging.getLogger(__name__)

VALID_STATUSES = ("Discovery", "Backlog", "On Hold", "In-flight", "Implemented")
NUMBER_FIELDS = ("impact_score", "effort_score", "investment")


# ── Helpers ──────────────────────────────────────────────────────────────


def _enforcement_date() -> datetime:
    configured = parse_datetime(current_app.config.get("GOVERNANCE_ENFORCEMENT_DATE"))
    return configured or GOVERNANCE_ENFORCEMENT_DATE


def _validate(data: dict, *, creating: bool = False) -> None:
    """Reject malformed input before it reaches storage."""
    errors = {}
    if creating and not (data.get("title") or "").strip():
        errors["title"] = "required"
    if "use_case_status" in data and data["use_case_status"] not in VALID_STATUSES:
        errors["use_case_status"] = f"must be one of {', '.join(VALID_STATUSES)}"
    for name in SCORE_FIELDS + EFFORT_FIELDS:
        value = data.get(name)
        if value is not None and not is_valid_score(value):
            errors[name] = "must be an integer between 1 and 5"
    for name in NUMBER_FIELDS:
        value = data.get(name)
        if value is not None and not is_number(value):
            errors[name] = "must be a number"
    if is_number(data.get("investment")) and data["investment"] < 0:
        errors["investment"] = "must not be negative"
    size = data.get("t_shirt_size")
    if size and size not in DEFAULT_BENCHMARK_CONFIG.t_shirt_base_fte:
        errors["t_shirt_size"] = f"must be one of {', '.join(DEFAULT_BENCHMARK_CONFIG.t_shirt_base_fte)}"
    if errors:
        raise ValidationError("Invalid use case data", details=errors)


def _engine_updates(data: dict) -> dict:
    """Editable fields from the request, flags coerced to bool."""
    updates = {k: data[k] for k in EDITABLE_FIELDS if k in data}
    for key in BOOL_FLAG_FIELDS:
        if key in updates:
            updates[key] = parse_bool_flag(updates[key])
    return updates


def _field_diff(use_case: UseCase, data: dict) -> dict:
    diff = {}
    for key in EDITABLE_FIELDS:
        if key in data and getattr(use_case, key) != data[key]:
            diff[key] = {"old": getattr(use_case, key), "new": data[key]}
    return diff


# ── Queries ──────────────────────────────────────────────────────────────


def get_use_case(use_case_id) -> UseCase:
    use_case = db.session.get(UseCase, use_case_id)
    if use_case is None:
        raise NotFoundError(resource="UseCase", resource_id=use_case_id)
    return use_case


def list_use_cases(status=None):
    """Use cases ordered by id, optionally narrowed to one status (unexecuted query)."""
    query = UseCase.query
    if status:
        query = query.filter_by(use_case_status=status)
    return query.order_by(UseCase.id)


def get_governance_status(use_case: UseCase) -> dict:
    """Gate results plus the derived TOM phase for one use case."""
    governance = perform_full_governance_check(use_case.to_snapshot())
    phase = derive_phase(
        use_case.use_case_status,
        use_case.deployment_status,
        use_case.tom_phase_override,
        capability_service.load_tom_config(),
    )
    result = governance.to_dict()
    result["use_case_id"] = use_case.id
    result["tom_phase"] = phase.to_dict()
    return result


def check_activation(use_case: UseCase, target_status: str) -> dict:
    """Dry-run of the activation guard for a status the client is about to set."""
    snapshot = use_case.to_snapshot().merged({"use_case_status": target_status})
    result = check_activation_allowed(snapshot, target_status)
    out = result.to_dict()
    out["target_status"] = target_status
    return out


# ── Mutations ────────────────────────────────────────────────────────────


def _guard_activation(use_case_id, snapshot: UseCaseSnapshot, target_status: str, actor: str) -> None:
    result = check_activation_allowed(snapshot, target_status)
    if not result.blocked:
        return
    payload = build_activation_blocked_response(result)
    write_audit(
        entity_type="use_case",
        entity_id=use_case_id if use_case_id is not None else "new",
        action="governance.activation_blocked",
        actor=actor,
        diff={"target_status": target_status, "missing_fields": payload["missing_fields"]},
    )
    raise GovernanceBlockedError(payload["message"], payload=payload)


def create_use_case(data: dict, *, actor: str = "system") -> UseCase:
    """Create a use case; creating straight into an active status is gated too.

    Returns:
        UseCase instance (already flushed).
    """
    _validate(data, creating=True)
    snapshot = UseCaseSnapshot.from_mapping(_engine_updates(data))
    target = data.get("use_case_status")
    if is_activation_status(target):
        _guard_activation(None, snapshot, target, actor)

    use_case = UseCase()
    use_case.set_fields(data)
    if not use_case.use_case_status:
        use_case.use_case_status = "Discovery"
    db.session.add(use_case)
    db.session.flush()

    write_audit(entity_type="use_case", entity_id=use_case.id, action="create", actor=actor,
                diff={"title": use_case.title, "use_case_status": use_case.use_case_status})
    logger.info("Use case %s created (%s)", use_case.id, use_case.use_case_status,
                extra={"use_case_id": use_case.id})
    return use_case


def update_use_case(use_case_id, data: dict, *, actor: str = "system", enforcement_date=None) -> dict:
    """Apply an edit through the governance checks.

    Raises:
        GovernanceBlockedError: move into an active status with gates failing.
        PhaseTransitionJustificationRequired: phase exit requirements unmet, no justification.

    Returns:
        dict with the flushed ``use_case`` plus ``auto_deactivated`` and
        ``governance_warning`` describing any regression outcome.
    """
    use_case = get_use_case(use_case_id)
    _validate(data)
    enforcement_date = enforcement_date or _enforcement_date()

    current = use_case.to_snapshot()
    updates = _engine_updates(data)
    proposed = current.merged(updates)
    target_status = proposed.use_case_status

    # 1. Activation guard
    if target_status != current.use_case_status and is_activation_status(target_status):
        _guard_activation(use_case.id, proposed, target_status, actor)

    # 2. Phase transition
    tom_config = capability_service.load_tom_config()
    if tom_config.enabled:
        from_phase = derive_phase(current.use_case_status, current.get("deployment_status"),
                                  current.get("tom_phase_override"), tom_config)
        to_phase = derive_phase(proposed.use_case_status, proposed.get("deployment_status"),
                                proposed.get("tom_phase_override"), tom_config)
        justification = data.get("phase_transition_justification")
        transition = check_phase_transition_requirements(
            proposed, from_phase.id, to_phase.id, tom_config,
            justification=justification,
            governance_gates=perform_full_governance_check(proposed),
        )
        if not transition.allowed:
            payload = build_phase_transition_required_response(transition)
            raise PhaseTransitionJustificationRequired(payload["message"], payload=payload)
        if transition.requires_justification:
            use_case.last_phase_transition_reason = justification.strip()
            write_audit(
                entity_type="use_case", entity_id=use_case.id,
                action="governance.phase_transition_override", actor=actor,
                diff={
                    "from_phase": transition.current_phase,
                    "to_phase": transition.target_phase,
                    "pending_exit_requirements": transition.pending_exit_requirements,
                    "justification": justification.strip(),
                },
            )

    # 3. Regression
    regression = check_governance_regression(current, updates, enforcement_date=enforcement_date)
    auto_deactivated = False
    warning = None
    if regression.should_deactivate and is_activation_status(target_status):
        auto_deactivated = True
        write_audit(
            entity_type="use_case", entity_id=use_case.id,
            action="governance.auto_deactivation", actor=actor,
            diff={
                "use_case_status": {"old": current.use_case_status, "new": DEACTIVATED_STATUS},
                "regressed_gate": regression.regressed_gate,
                "missing_fields": regression.missing_fields,
            },
        )
    elif regression.is_legacy_use_case:
        warning = regression.reason
        write_audit(
            entity_type="use_case", entity_id=use_case.id,
            action="governance.legacy_warning", actor=actor,
            diff={"regressed_gate": regression.regressed_gate, "missing_fields": regression.missing_fields},
        )

    diff = _field_diff(use_case, data)
    use_case.set_fields(data)
    if auto_deactivated:
        use_case.use_case_status = DEACTIVATED_STATUS
        logger.warning("Use case %s auto-deactivated: %s", use_case.id, regression.reason,
                       extra={"use_case_id": use_case.id, "event_type": "auto_deactivation"})
    db.session.flush()

    if diff:
        write_audit(entity_type="use_case", entity_id=use_case.id, action="update", actor=actor, diff=diff)

    return {
        "use_case": use_case,
        "auto_deactivated": auto_deactivated,
        "regression": regression.to_dict() if regression.regressed_gate else None,
        "governance_warning": warning,
    }


def delete_use_case(use_case_id, *, actor: str = "system") -> None:
    use_case = get_use_case(use_case_id)
    write_audit(entity_type="use_case", entity_id=use_case.id, action="delete", actor=actor,
                diff={"title": use_case.title})
    db.session.delete(use_case)
    db.session.flush()
    logger.info("Use case %s deleted", use_case_id, extra={"use_case_id": use_case_id})
