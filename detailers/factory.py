# -*- coding: utf-8 -*-
import os
from datetime import timedelta
from typing import Any, Mapping, Optional

import click
from flask import Flask

from detailers.config import Config
from detailers.database import db

# Observability imports
from detailers.services.metrics import init_metrics
from detailers.services.request_context import init_request_context
from detailers.services.structured_logging import init_logging, get_logger

from detailers.infra.auth import init_jwt
from detailers.middleware.errors import register_error_handlers

from detailers.services.course_catalog import CourseCatalog
from detailers.services.credential_issuer import CredentialIssuer
from detailers.services.notifier import Notifier
from detailers.services.payment_gateway import StripeGateway
from detailers.services.purchase_service import PurchaseService

logger = get_logger("detailers.startup")


def _migrate_db(app):
    """Run Alembic migrations to head using the app's DB URL."""
    from pathlib import Path
    from alembic import command
    from alembic.config import Config as AlembicConfig

    base_dir = Path(__file__).resolve().parent.parent
    cfg = AlembicConfig()  # in-memory config, avoid alembic.ini dependency
    cfg.set_main_option("script_location", str(base_dir / "migrations"))
    cfg.set_main_option("sqlalchemy.url", app.config["SQLALCHEMY_DATABASE_URI"])

    command.upgrade(cfg, "head")
    logger.info("Database migrations applied successfully")


def _init_services(app, gateway=None, notifier=None):
    """Build the workflow collaborators from config and store them on app.extensions."""
    gateway = gateway or StripeGateway(
        secret_key=app.config["STRIPE_SECRET_KEY"],
        webhook_secret=app.config["STRIPE_WEBHOOK_SECRET"],
        currency=app.config["PAYMENT_CURRENCY"],
    )
    notifier = notifier or Notifier(
        api_key=app.config["SENDGRID_API_KEY"],
        from_email=app.config["SENDGRID_FROM_EMAIL"],
        from_name=app.config["SENDGRID_FROM_NAME"],
        frontend_origin=app.config["FRONTEND_ORIGIN"],
    )
    catalog = CourseCatalog()
    issuer = CredentialIssuer()

    app.extensions["payment_gateway"] = gateway
    app.extensions["notifier"] = notifier
    app.extensions["course_catalog"] = catalog
    app.extensions["credential_issuer"] = issuer
    app.extensions["purchase_service"] = PurchaseService(
        gateway=gateway, catalog=catalog, issuer=issuer, notifier=notifier)

    if not gateway.configured:
        logger.warning("STRIPE_SECRET_KEY not set - payment intents will fail")
    if not gateway.webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET not set - webhooks will be rejected")


def _register_cli(app):
    @app.cli.command("reconcile-fulfillment")
    @click.option("--grace-minutes", type=int, default=None,
                  help="Only purchases paid at least this long ago.")
    @click.option("--max-attempts", type=int, default=None,
                  help="Skip purchases that already failed this many times.")
    def reconcile_fulfillment_command(grace_minutes, max_attempts):
        """Re-run fulfillment for PAID purchases that never completed it."""
        from detailers.jobs.reconcile_fulfillment import reconcile_fulfillment

        summary = reconcile_fulfillment(
            app.extensions["purchase_service"],
            grace_minutes=grace_minutes if grace_minutes is not None
            else app.config["FULFILLMENT_GRACE_MINUTES"],
            max_attempts=max_attempts if max_attempts is not None
            else app.config["FULFILLMENT_MAX_ATTEMPTS"],
        )
        click.echo(" ".join(f"{k}={v}" for k, v in summary.items()))


def create_app(config: Optional[Mapping[str, Any]] = None,
               gateway: Optional[StripeGateway] = None,
               notifier: Optional[Notifier] = None) -> Flask:
    app = Flask(__name__)
    app.url_map.strict_slashes = False

    # --- Core config ---
    app.config.update(Config().as_dict())
    if config:
        app.config.update(config)

    # --- JWT config ---
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(
        minutes=int(app.config["JWT_ACCESS_TOKEN_EXPIRES_MIN"]))

    db.init_app(app)

    # --- Initialize observability ---
    init_logging(app)
    init_request_context(app)
    init_metrics(app)

    init_jwt(app)
    register_error_handlers(app)
    _init_services(app, gateway=gateway, notifier=notifier)

    # --- Mount blueprints ---
    from detailers.routes import auth, guest_course_purchases, health, payment_webhooks
    app.register_blueprint(health.health_bp)
    app.register_blueprint(auth.auth_bp)
    app.register_blueprint(guest_course_purchases.guest_purchases_bp)
    app.register_blueprint(payment_webhooks.payment_webhooks_bp)

    _register_cli(app)

    # --- DB init ---
    with app.app_context():
        # Only auto-create tables in testing or if explicitly enabled
        if app.config.get("TESTING") or app.config.get("DB_AUTOCREATE"):
            db.create_all()
        elif app.config.get("DB_MIGRATE_ON_START"):
            _migrate_db(app)

    return app
