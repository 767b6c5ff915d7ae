"""Shared utility functions for blueprints and services.

parse_datetime:      ISO instant / date string → aware UTC datetime (None on bad input)
parse_bool_flag:     'true'/'false' storage strings → bool | None
is_number:           finite int or float, never bool
db_commit_or_error:  commit with rollback + standard error response on failure
"""
import logging
import math
from datetime import date, datetime, time, timezone

from flask import jsonify

from aigov.models import db

logger = logging.getLogger(__name__)


def parse_datetime(value):
    """Parse an ISO datetime or date string to a timezone-aware UTC datetime.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DDTHH:MM:SS[+offset|Z]
    - YYYY-MM-DD (midnight UTC)
    - datetime / date objects (naive values are taken as UTC)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except (ValueError, TypeError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_bool_flag(value):
    """Coerce a stored flag ('true'/'false', bool, or blank) to bool or None.

    None and blank strings stay None so that "not answered" is preserved.
    Any other non-boolean string is treated as an answered flag and maps to
    True only for the usual truthy spellings.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    raw = str(value).strip().lower()
    if not raw:
        return None
    return raw in ("true", "yes", "1", "y")


def is_number(value) -> bool:
    """Finite int or float; bools and NaN/inf do not count."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def format_bool_flag(value):
    """Inverse of parse_bool_flag for the string-typed storage columns."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return "true" if parse_bool_flag(value) else "false"
    return "true" if value else "false"


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure — ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    Other → 500 (unexpected)
    """
    from sqlalchemy.exc import IntegrityError, OperationalError

    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return jsonify({"error": "Duplicate or constraint violation"}), 409
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return jsonify({"error": "Database error"}), 500
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit")
        return jsonify({"error": "Database error"}), 500
