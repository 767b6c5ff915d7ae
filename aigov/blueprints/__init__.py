"""
AI Use-Case Governance Platform
Blueprint registry.
"""

import logging

from flask import request

from aigov.core.exceptions import (
    GovernanceBlockedError,
    NotFoundError,
    PhaseTransitionJustificationRequired,
    ValidationError,
)
from aigov.utils.errors import E, api_error
from aigov.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def register_service_error_handlers(bp):
    """Map service-layer exceptions onto the standard error envelope."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.BUSINESS_RULE, str(error), details=error.details)

    @bp.errorhandler(GovernanceBlockedError)
    def _handle_governance_blocked(error: GovernanceBlockedError):
        # The activation_blocked audit row is flushed before the raise; keep it
        err = db_commit_or_error()
        if err:
            return err
        return api_error(E.GOVERNANCE_BLOCK, str(error), details=error.payload)

    @bp.errorhandler(PhaseTransitionJustificationRequired)
    def _handle_phase_justification(error: PhaseTransitionJustificationRequired):
        return api_error(E.PHASE_JUSTIFICATION, str(error), details=error.payload)
