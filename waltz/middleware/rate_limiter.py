"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in waltz/__init__.py with no default limits;
this module applies the limits per route category.

Usage:
    from waltz.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_REPORT_GRID_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Report grid endpoints: REPORT_GRID_RATE_LIMIT (default 120/minute).
          Cell resolution fans out to many queries per request.
        - Health check: exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    grid_limit = app.config.get("REPORT_GRID_RATE_LIMIT") or DEFAULT_REPORT_GRID_LIMIT
    bp = app.blueprints.get("report_grid")
    if bp:
        limiter.limit(grid_limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured - report_grid: %s", grid_limit)
