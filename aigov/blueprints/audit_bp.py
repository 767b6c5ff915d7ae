"""
AI Use-Case Governance Platform
Audit blueprint.

Endpoints:
    GET  /api/v1/audit                                — list / filter audit logs
    GET  /api/v1/audit/<int:log_id>                   — single audit entry
    GET  /api/v1/use-cases/<int:id>/governance-history — governance events for one use case
"""

from flask import Blueprint, jsonify, request

from aigov.models import db
from aigov.models.audit import AuditLog

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")


# ── List / filter ────────────────────────────────────────────────────────────

@audit_bp.route("/audit", methods=["GET"])
def list_audit_logs():
    """
    Return paginated audit logs with optional filters.

    Query params:
        entity_type  — filter by entity type
        entity_id    — filter by entity PK
        action       — filter by action string (prefix match)
        actor        — filter by actor
        page         — page number (default 1)
        per_page     — items per page (default 50, max 200)
    """
    q = AuditLog.query

    # ── Filters ──────────────────────────────────────────────────────────
    entity_type = request.args.get("entity_type")
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)

    entity_id = request.args.get("entity_id")
    if entity_id:
        q = q.filter(AuditLog.entity_id == entity_id)

    action = request.args.get("action")
    if action:
        q = q.filter(AuditLog.action.startswith(action))

    actor = request.args.get("actor")
    if actor:
        q = q.filter(AuditLog.actor == actor)

    # ── Ordering ─────────────────────────────────────────────────────────
    q = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())

    # ── Pagination ───────────────────────────────────────────────────────
    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(200, max(1, request.args.get("per_page", 50, type=int)))

    paginated = q.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        "audit_logs": [log.to_dict() for log in paginated.items],
        "total": paginated.total,
        "page": paginated.page,
        "per_page": paginated.per_page,
        "pages": paginated.pages,
    })


# ── Single entry ─────────────────────────────────────────────────────────────

@audit_bp.route("/audit/<int:log_id>", methods=["GET"])
def get_audit_log(log_id):
    log = db.session.get(AuditLog, log_id)
    if not log:
        return jsonify({"error": "Audit log not found"}), 404
    return jsonify(log.to_dict())


# ── Governance history ───────────────────────────────────────────────────────

@audit_bp.route("/use-cases/<int:use_case_id>/governance-history", methods=["GET"])
def governance_history(use_case_id):
    """Governance enforcement events for one use case, oldest first."""
    logs = (
        AuditLog.query
        .filter(AuditLog.entity_type == "use_case")
        .filter(AuditLog.entity_id == str(use_case_id))
        .filter(AuditLog.action.startswith("governance."))
        .order_by(AuditLog.timestamp, AuditLog.id)
        .all()
    )
    return jsonify({"use_case_id": use_case_id, "events": [log.to_dict() for log in logs]})
