from sqlalchemy import inspect, text
from sqlalchemy.engine.url import make_url

from trendbits.app import create_app, create_tables
from trendbits.extensions import db


def _add_missing_columns(engine) -> None:
    # Databases created before usernames and reset tokens existed.
    inspector = inspect(engine)
    user_columns = {c["name"] for c in inspector.get_columns("users")}
    statements = []
    if "username" not in user_columns:
        statements.append("ALTER TABLE users ADD COLUMN username VARCHAR(30)")
    if "reset_token" not in user_columns:
        statements.append("ALTER TABLE users ADD COLUMN reset_token VARCHAR(64)")
    if "reset_token_expires" not in user_columns:
        statements.append("ALTER TABLE users ADD COLUMN reset_token_expires TIMESTAMP")
    topic_columns = {c["name"] for c in inspector.get_columns("hot_topics")}
    if "position" not in topic_columns:
        statements.append("ALTER TABLE hot_topics ADD COLUMN position INTEGER NOT NULL DEFAULT 0")
    if not statements:
        return
    with engine.begin() as conn:
        for stmt in statements:
            conn.execute(text(stmt))


def main() -> None:
    app = create_app()
    with app.app_context():
        missing = create_tables()
        if missing:
            raise RuntimeError(
                f"Database initialization failed (missing tables: {', '.join(missing)})."
            )
        engine = db.engine
        _add_missing_columns(engine)
        url = make_url(str(engine.url)).render_as_string(hide_password=True)
    print(f"Database initialized ({url}).")


if __name__ == "__main__":
    main()
