import os
from pathlib import Path

import click
from dotenv import load_dotenv
from flask import Flask, request
from flask_cors import CORS
from flask_smorest import Api
from sqlalchemy import event, inspect, text
from sqlalchemy.engine import Engine
from werkzeug.exceptions import HTTPException, InternalServerError

from trendbits.config import cors_origins, load_settings
from trendbits.errors import ApiError, ConnectivityError, UpstreamAIError
from trendbits.extensions import db
from trendbits.responses import error, success
from trendbits.routes.auth import register_auth_routes
from trendbits.routes.history import history_blp
from trendbits.routes.prompt import prompt_blp
from trendbits.routes.trend import trend_blp
from trendbits.services import database as database_service
from trendbits.services import gemini as gemini_service
from trendbits.services.database import ConnectionManager, connection_manager, query_with_retry
from trendbits.services.gemini import GeminiClient

# Load env vars from `trendbits/.env` regardless of the process working directory.
load_dotenv(dotenv_path=Path(__file__).with_name(".env"))
# Also allow a repo/root `.env` (or process env) to supply values without overriding.
load_dotenv()

EXPECTED_TABLES = frozenset({"users", "trend_history", "hot_topics", "guest_requests"})


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # SQLite ships with foreign keys off; history rows rely on ON DELETE CASCADE.
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _flatten_messages(messages: object) -> object:
    # webargs nests errors by location: {"json": {"field": [...]}}.
    if not isinstance(messages, dict):
        return messages
    flat: dict[str, object] = {}
    for location, errors in messages.items():
        if isinstance(errors, dict):
            flat.update(errors)
        else:
            flat[location] = errors
    return flat


def _register_error_handlers(app: Flask) -> None:
    # Registered after Api(app) so these win over flask-smorest's handler.

    @app.errorhandler(HTTPException)
    def _handle_http_exception(err: HTTPException):
        if isinstance(err, ApiError):
            if isinstance(err, UpstreamAIError) and err.detail:
                app.logger.error("AI failure on %s: %s", request.path, err.detail)
            elif isinstance(err, ConnectivityError):
                app.logger.error(
                    "Database unavailable on %s after %d attempts.", request.path, err.attempts
                )
            return error(
                title=err.title,
                message=err.description,
                status_code=err.code,
                data=err.data,
            )
        if not request.path.startswith("/api/"):
            return err
        messages = (getattr(err, "data", None) or {}).get("messages")
        if messages:
            return error(
                title="Validation Error",
                message="Please check the highlighted fields.",
                status_code=err.code,
                data={"errors": _flatten_messages(messages)},
            )
        return error(title=err.name, message=err.description, status_code=err.code)

    @app.errorhandler(InternalServerError)
    def _handle_internal_server_error(err: InternalServerError):
        original = getattr(err, "original_exception", None) or err
        app.logger.exception("Unhandled API exception: %s", original)
        if not request.path.startswith("/api/"):
            return err
        return error(
            title="Internal Server Error",
            message="Unexpected server error.",
            status_code=500,
        )


def _register_health_route(app: Flask) -> None:
    @app.route("/api/health", methods=["GET"])
    def health():
        query_with_retry(lambda: db.session.execute(text("SELECT 1")))
        return success(
            title="Healthy",
            message="The service and its database are reachable.",
            data={"database": connection_manager().state},
            no_store=True,
        )


def _register_cli(app: Flask, api: Api) -> None:
    @app.cli.command("init-db")
    def init_db_command():
        """Create the TrendBits tables in the configured database."""
        missing = create_tables()
        if missing:
            raise click.ClickException(
                f"Database initialization failed (missing tables: {', '.join(missing)})."
            )
        click.echo("Database initialized.")

    @app.cli.command("generate-hot-topics")
    def generate_hot_topics_command():
        """Generate and store a fresh batch of hot AI topics."""
        from trendbits.services.hot_topics import generate_batch

        try:
            batch = generate_batch()
        except ApiError as exc:
            raise click.ClickException(f"{exc.title}: {exc.description}")
        click.echo(f"Stored batch {batch.batch_id} ({len(batch.topics)} topics).")

    @app.cli.command("gen-openapi")
    def gen_openapi():
        """Generate an OpenAPI3 YAML spec for the Flask-Smorest API."""
        with app.test_request_context():
            yaml_spec = api.spec.to_yaml()
            Path("openapi.yaml").write_text(yaml_spec)
            click.echo("Wrote openapi.yaml")


def create_tables() -> list[str]:
    """Create all tables and return the names of any expected table still missing."""
    db.create_all()
    existing = set(inspect(db.engine).get_table_names())
    return sorted(EXPECTED_TABLES - existing)


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.config.update(load_settings())
    if config_overrides:
        app.config.update(config_overrides)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)

    api = Api(app)
    api.register_blueprint(prompt_blp)
    api.register_blueprint(history_blp)
    api.register_blueprint(trend_blp)
    register_auth_routes(app)
    _register_health_route(app)
    _register_error_handlers(app)

    CORS(
        app,
        resources={r"/api/*": {"origins": cors_origins()}},
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Cron-Secret"],
    )

    app.extensions[database_service.EXTENSION_KEY] = ConnectionManager(
        lambda: db.engine,
        max_attempts=int(app.config["DB_MAX_RETRY_ATTEMPTS"]),
        retry_delay=int(app.config["DB_RETRY_DELAY_MS"]) / 1000.0,
        query_retries=int(app.config["DB_QUERY_RETRIES"]),
        rollback=lambda: db.session.rollback(),
        on_discard=lambda: db.session.remove(),
    )
    # Tests install a fake client here before the first request.
    app.extensions.setdefault(
        gemini_service.EXTENSION_KEY,
        GeminiClient(app.config.get("GEMINI_API_KEY"), model=app.config["GEMINI_MODEL"]),
    )

    _register_cli(app, api)
    return app


def create_test_app(config_overrides: dict | None = None) -> Flask:
    overrides = {
        "TESTING": True,
        "JWT_SECRET": "test-jwt-secret",
        "IP_SALT": "test-ip-salt",
        "BCRYPT_ROUNDS": 4,
        "DB_RETRY_DELAY_MS": 0,
        "GEMINI_API_KEY": "",
    }
    if config_overrides:
        overrides.update(config_overrides)
    return create_app(config_overrides=overrides)


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        # No database means no requests can be served.
        connection_manager().connect()
    port = int(os.environ.get("PORT", "5000"))
    debug = os.environ.get("FLASK_DEBUG", "").strip().lower() in ("1", "true", "yes")
    app.run(debug=debug, port=port)
