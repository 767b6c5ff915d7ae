"""
AI Use-Case Governance Platform
Capability transition & TOM blueprint.

Endpoint groups
───────────────
  Config       GET/PUT  /capability/config                      Transition config
               GET/PUT  /tom/config                             TOM phase config
  Use case     GET/PUT  /use-cases/<id>/capability              Forecast / manual edit
               POST     /use-cases/<id>/capability/derive       Derive one forecast
  Portfolio    POST     /capability/derive-all                  Batch derivation
               GET      /capability/portfolio-summary           Portfolio roll-up
               GET      /capability/staffing-projection         4-point FTE projection
               GET      /capability/population-stats            Derived / manual counts
"""

import logging

from flask import Blueprint, jsonify, request

from aigov.blueprints import register_service_error_handlers
from aigov.services import capability_service, use_case_service
from aigov.utils.helpers import db_commit_or_error, parse_bool_flag

logger = logging.getLogger(__name__)

capability_bp = Blueprint("capability", __name__, url_prefix="/api/v1")
register_service_error_handlers(capability_bp)


def _actor() -> str:
    return request.headers.get("X-Actor", "system")[:150]


def _flag(data: dict, name: str) -> bool:
    value = data.get(name, request.args.get(name))
    return bool(parse_bool_flag(value))


# ══════════════════════════════════════════════════════════════════
# 1.  Configuration
# ══════════════════════════════════════════════════════════════════

@capability_bp.route("/capability/config", methods=["GET"])
def get_capability_config():
    return jsonify(capability_service.load_transition_config().to_dict())


@capability_bp.route("/capability/config", methods=["PUT"])
def update_capability_config():
    data = request.get_json(silent=True)
    config = capability_service.update_transition_config(data, actor=_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "config": config.to_dict()})


@capability_bp.route("/tom/config", methods=["GET"])
def get_tom_config():
    return jsonify(capability_service.load_tom_config().to_dict())


@capability_bp.route("/tom/config", methods=["PUT"])
def update_tom_config():
    data = request.get_json(silent=True)
    config = capability_service.update_tom_config(data, actor=_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "config": config.to_dict()})


# ══════════════════════════════════════════════════════════════════
# 2.  Per use case
# ══════════════════════════════════════════════════════════════════

@capability_bp.route("/use-cases/<int:use_case_id>/capability", methods=["GET"])
def get_use_case_capability(use_case_id):
    use_case = use_case_service.get_use_case(use_case_id)
    return jsonify(capability_service.get_use_case_capability(use_case))


@capability_bp.route("/use-cases/<int:use_case_id>/capability", methods=["PUT"])
def update_use_case_capability(use_case_id):
    """Manual edit — marks the forecast as hand-authored (derived=false)."""
    use_case = use_case_service.get_use_case(use_case_id)
    data = request.get_json(silent=True)
    capability = capability_service.update_use_case_capability(use_case, data, actor=_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(capability)


@capability_bp.route("/use-cases/<int:use_case_id>/capability/derive", methods=["POST"])
def derive_use_case_capability(use_case_id):
    """Body/query: force (bool) — overwrite hand-edited data."""
    data = request.get_json(silent=True) or {}
    use_case = use_case_service.get_use_case(use_case_id)
    result = capability_service.derive_use_case_capability(
        use_case, force=_flag(data, "force"), actor=_actor(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


# ══════════════════════════════════════════════════════════════════
# 3.  Portfolio
# ══════════════════════════════════════════════════════════════════

@capability_bp.route("/capability/derive-all", methods=["POST"])
def derive_all():
    """Body/query: force (bool), dry_run (bool)."""
    data = request.get_json(silent=True) or {}
    dry_run = _flag(data, "dry_run")
    result = capability_service.derive_all(
        force=_flag(data, "force"), dry_run=dry_run, actor=_actor(),
    )
    if not dry_run:
        err = db_commit_or_error()
        if err:
            return err
    logger.info("Batch derivation via API: derived=%d skipped=%d errors=%d",
                result["derived"], result["skipped"], result["errors"])
    return jsonify(result)


@capability_bp.route("/capability/portfolio-summary", methods=["GET"])
def portfolio_summary():
    return jsonify(capability_service.portfolio_summary())


@capability_bp.route("/capability/staffing-projection", methods=["GET"])
def staffing_projection():
    return jsonify({"projection": capability_service.staffing_projection()})


@capability_bp.route("/capability/population-stats", methods=["GET"])
def population_stats():
    return jsonify(capability_service.population_stats())
