"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:   RATELIMIT_AUTH (default 20/minute, brute-force guard)
        - Write endpoints:  120/minute (clients, checklists, QS actions)
        - Health / hub:     exempt (probes and long-lived streams)

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth_bp")
    if bp:
        limiter.limit(app.config.get("RATELIMIT_AUTH", "20/minute"))(bp)

    for bp_name in ("client_bp", "checklist_bp", "qs_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("120/minute")(bp)

    for bp_name in ("health_bp", "hub_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — auth: %s, api: 120/min",
        app.config.get("RATELIMIT_AUTH", "20/minute"),
    )
