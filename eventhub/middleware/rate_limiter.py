"""
Per-blueprint rate limits.

The ``Limiter`` in ``eventhub/__init__.py`` has no default limits; limits
are attached here once the blueprints are registered. Keys are the remote IP.
Nothing is limited under TESTING.
"""

import logging

logger = logging.getLogger(__name__)

# analytics are recomputed on every planning request, hence the lower ceiling
_BLUEPRINT_LIMITS = {
    "events_bp": "120/minute",
    "planning_bp": "60/minute",
}
_EXEMPT_BLUEPRINTS = ("health_bp",)


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        return

    limits = dict(_BLUEPRINT_LIMITS, cron_bp=app.config.get("CRON_RATE_LIMIT", "30/minute"))
    for name, limit in limits.items():
        blueprint = app.blueprints.get(name)
        if blueprint is not None:
            limiter.limit(limit)(blueprint)
    for name in _EXEMPT_BLUEPRINTS:
        blueprint = app.blueprints.get(name)
        if blueprint is not None:
            limiter.exempt(blueprint)

    logger.info("Rate limits: %s", ", ".join(f"{k}={v}" for k, v in sorted(limits.items())))
