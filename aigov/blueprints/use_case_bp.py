"""
AI Use-Case Governance Platform
Use-case blueprint — CRUD and governance gate endpoints.

Endpoints:
    GET    /api/v1/use-cases                              — list (filter: status)
    POST   /api/v1/use-cases                              — create
    GET    /api/v1/use-cases/<id>                         — detail
    PUT    /api/v1/use-cases/<id>                         — governed update
    DELETE /api/v1/use-cases/<id>                         — delete
    GET    /api/v1/use-cases/<id>/governance              — gate results + TOM phase
    POST   /api/v1/use-cases/<id>/activation-check        — dry-run activation guard
"""

import logging

from flask import Blueprint, jsonify, request

from aigov.blueprints import paginate_query, register_service_error_handlers
from aigov.services import use_case_service
from aigov.services.governance_enforcement import ACTIVATION_STATUSES
from aigov.utils.errors import E, api_error
from aigov.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

use_case_bp = Blueprint("use_case", __name__, url_prefix="/api/v1")
register_service_error_handlers(use_case_bp)


def _actor() -> str:
    return request.headers.get("X-Actor", "system")[:150]


# ══════════════════════════════════════════════════════════════════
# 1.  CRUD
# ══════════════════════════════════════════════════════════════════

@use_case_bp.route("/use-cases", methods=["GET"])
def list_use_cases():
    q = use_case_service.list_use_cases(request.args.get("status"))
    items, total = paginate_query(q)
    return jsonify({"items": [uc.to_dict() for uc in items], "total": total})


@use_case_bp.route("/use-cases", methods=["POST"])
def create_use_case():
    data = request.get_json(silent=True) or {}
    use_case = use_case_service.create_use_case(data, actor=_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(use_case.to_dict()), 201


@use_case_bp.route("/use-cases/<int:use_case_id>", methods=["GET"])
def get_use_case(use_case_id):
    use_case = use_case_service.get_use_case(use_case_id)
    return jsonify(use_case.to_dict())


@use_case_bp.route("/use-cases/<int:use_case_id>", methods=["PUT"])
def update_use_case(use_case_id):
    """Governed update.

    Body: any editable field, plus optional ``phase_transition_justification``.
    403 when activation is blocked, 400 when a phase move needs justification.
    """
    data = request.get_json(silent=True) or {}
    if not data:
        return api_error(E.VALIDATION_REQUIRED, "Request body is required")

    outcome = use_case_service.update_use_case(use_case_id, data, actor=_actor())
    err = db_commit_or_error()
    if err:
        return err

    body = outcome["use_case"].to_dict()
    body["auto_deactivated"] = outcome["auto_deactivated"]
    body["governance_warning"] = outcome["governance_warning"]
    body["regression"] = outcome["regression"]
    return jsonify(body)


@use_case_bp.route("/use-cases/<int:use_case_id>", methods=["DELETE"])
def delete_use_case(use_case_id):
    use_case_service.delete_use_case(use_case_id, actor=_actor())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Use case deleted"}), 200


# ══════════════════════════════════════════════════════════════════
# 2.  Governance
# ══════════════════════════════════════════════════════════════════

@use_case_bp.route("/use-cases/<int:use_case_id>/governance", methods=["GET"])
def get_governance(use_case_id):
    use_case = use_case_service.get_use_case(use_case_id)
    return jsonify(use_case_service.get_governance_status(use_case))


@use_case_bp.route("/use-cases/<int:use_case_id>/activation-check", methods=["POST"])
def activation_check(use_case_id):
    """Body: {"target_status": "In-flight"} (defaults to In-flight)."""
    data = request.get_json(silent=True) or {}
    target = data.get("target_status") or ACTIVATION_STATUSES[0]
    use_case = use_case_service.get_use_case(use_case_id)
    return jsonify(use_case_service.check_activation(use_case, target))
