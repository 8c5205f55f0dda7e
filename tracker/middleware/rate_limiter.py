"""
Rate limiting configuration.

The Limiter instance is created in tracker/__init__.py with no default
limits; the login route carries its own ``LOGIN_RATE_LIMIT`` decorator and
this module exempts the health probes.

Usage:
    from tracker.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """Apply blueprint-level exemptions. Disabled when RATELIMIT_ENABLED is False."""
    if not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled (RATELIMIT_ENABLED=False)")
        return

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: login: %s", app.config.get("LOGIN_RATE_LIMIT"))
