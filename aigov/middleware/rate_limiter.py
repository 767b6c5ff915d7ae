"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in aigov/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from aigov.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Batch derivation:  DERIVATION_RATE_LIMIT (default 10/minute)
        - Use-case writes:   60/minute
        - Audit reads:       200/minute
        - Health check:      exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    derivation_limit = app.config.get("DERIVATION_RATE_LIMIT", "10/minute")

    # Capability blueprint — batch derivation walks the whole portfolio
    bp = app.blueprints.get("capability")
    if bp:
        limiter.limit(derivation_limit)(bp)

    bp = app.blueprints.get("use_case")
    if bp:
        limiter.limit("60/minute")(bp)

    bp = app.blueprints.get("audit")
    if bp:
        limiter.limit("200/minute")(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — capability: %s, use cases: 60/min, audit: 200/min",
        derivation_limit,
    )
