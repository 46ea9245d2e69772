"""
EventHub Planning Service
Application factory.

    from eventhub import create_app

    app = create_app()                             # APP_ENV, else development
    app = create_app("testing", clock=FixedClock(...))

``clock`` replaces the wall clock for every "now" the service computes
(reminder due times, SLA windows, digest weeks).
"""

import importlib
import json
import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from eventhub.auth import init_auth
from eventhub.config import config
from eventhub.middleware.logging_config import configure_logging
from eventhub.middleware.rate_limiter import init_rate_limits
from eventhub.middleware.timing import init_request_timing
from eventhub.models import db
from eventhub.utils.clock import init_clock
from eventhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

_MODEL_MODULES = (
    "audit", "debrief", "event", "notification", "publishing", "scheduling", "user", "venue",
)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    # SQLite ships with FK checks off; the ON DELETE rules rely on them
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
# limits are attached per blueprint in init_rate_limits
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL") or "memory://",
)


def create_app(config_name=None, *, clock=None):
    config_name = config_name or os.getenv("APP_ENV", "development")
    settings = config[config_name]
    settings.check()

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(settings)

    # logging first so extension setup is captured
    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    origins = [o.strip() for o in (app.config.get("CORS_ORIGINS") or "").split(",") if o.strip()]
    CORS(app, origins=origins if origins and origins != ["*"] else "*")

    init_clock(app, clock)
    init_auth(app)
    init_request_timing(app)

    # every model must be imported before create_all / alembic autogenerate
    for module in _MODEL_MODULES:
        importlib.import_module(f"eventhub.models.{module}")

    if config_name == "development" and app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    _register_blueprints(app)
    _register_error_handlers(app)
    init_rate_limits(app, limiter)

    # importing the jobs module fills the scheduler registry
    importlib.import_module("eventhub.services.scheduled_jobs")
    from eventhub.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)
    _register_cli(app)

    return app


def _register_blueprints(app):
    from eventhub.blueprints.cron_bp import cron_bp
    from eventhub.blueprints.events_bp import events_bp
    from eventhub.blueprints.health_bp import health_bp
    from eventhub.blueprints.planning_bp import planning_bp

    for blueprint in (cron_bp, events_bp, health_bp, planning_bp):
        app.register_blueprint(blueprint)


def _register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, f"No route for {request.method} {request.path}")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, f"{request.method} is not allowed here")

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Rate limit exceeded",
                         details={"limit": str(e.description)})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error on %s %s", request.method, request.path,
                     exc_info=getattr(e, "original_exception", None) or True)
        return api_error(E.INTERNAL, "Internal server error")


def _register_cli(app):
    from eventhub.services.scheduler_service import SchedulerService, get_registered_jobs

    @app.cli.command("run-job")
    @click.argument("job_name", required=False)
    def run_job_cmd(job_name):
        """Run JOB_NAME once, or every registered job when omitted.

        Prints one JSON line per job.
        """
        SchedulerService.ensure_jobs_registered()
        for name in [job_name] if job_name else list(get_registered_jobs()):
            click.echo(json.dumps(SchedulerService.run_job(name), default=str))
