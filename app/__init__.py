from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from app.clientes import clientes_bp
from app.core.auth import auth_bp
from app.core.config import Config
from app.core.errors import LedgerError, PersistenceError
from app.core.extensions import db, login_manager, migrate
from app.core.models import User, seed_demo_data
from app.core.tenancy import load_tenant_context
from app.operaciones import operaciones_bp

APP_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.before_request(load_tenant_context)

    app.register_blueprint(auth_bp)
    app.register_blueprint(clientes_bp)
    app.register_blueprint(operaciones_bp)

    register_error_handlers(app)
    register_cli(app)
    register_routes(app)
    return app


def configure_logging(app: Flask) -> None:
    if app.config.get("TESTING"):
        return
    level = str(app.config.get("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def register_routes(app: Flask) -> None:
    @app.get("/")
    def home():
        return jsonify({"name": "estudio-contable", "version": APP_VERSION, "status": "running"})

    @app.get("/health")
    def health():
        return jsonify({"status": "healthy", "version": APP_VERSION})


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(LedgerError)
    def ledger_error(error: LedgerError):
        body = {"error": error.kind, "message": str(error)}
        body.update(error.details())
        return jsonify(body), error.status_code

    @app.errorhandler(PersistenceError)
    def persistence_error(error: PersistenceError):
        logger.error("Operacion %s fallida: %s", error.operation, error)
        return (
            jsonify({"error": error.kind, "message": "No se pudo completar la operacion. Intente nuevamente."}),
            error.status_code,
        )

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        return jsonify({"error": error.name.lower().replace(" ", "_"), "message": error.description}), error.code


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed a demo owner with clients."""
        if reset:
            db.drop_all()
        db.create_all()
        if not User.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing users found.")

    @app.cli.command("generate-monthly")
    @click.option("--dia", type=click.IntRange(1, 31), default=None, help="Billing day (default: today).")
    @click.option("--mes", type=click.IntRange(1, 12), default=None, help="Billing month (default: today).")
    @click.option("--anio", type=click.IntRange(min=2020), default=None, help="Billing year (default: today).")
    @click.option("--email", type=str, default=None, help="Only generate for this owner.")
    def generate_monthly_command(dia: int | None, mes: int | None, anio: int | None, email: str | None) -> None:
        """Generate recurring operations for every owner with fixed clients."""
        from app.operaciones.services import generate_monthly_for_all_owners

        summary = generate_monthly_for_all_owners(dia=dia, mes=mes, anio=anio, email=email)
        if not summary.usuarios_procesados:
            click.echo("No users found for monthly generation.")
            return
        for error in summary.errores:
            click.echo(f"[{error['usuario']}] {error['error']}: {error['mensaje']}")
        click.echo(
            f"generated={summary.total_generadas} users={summary.usuarios_con_generacion} "
            f"processed={summary.usuarios_procesados} errors={len(summary.errores)}"
        )

    @app.cli.command("fix-montos-mensualidades")
    @click.option("--email", type=str, default=None, help="Only repair this owner.")
    def fix_montos_command(email: str | None) -> None:
        """Repair recurring operations created with amount 0."""
        from app.operaciones.services import fix_montos_mensualidades

        query = User.query
        if email:
            query = query.filter_by(email=email.strip().lower())
        for user in query.order_by(User.id.asc()).all():
            result = fix_montos_mensualidades(user.id)
            click.echo(f"[{user.email}] updated={result['actualizadas']}")


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))
