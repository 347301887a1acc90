import logging

from flask import Flask
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from dotenv import load_dotenv

db = SQLAlchemy()
migrate = Migrate()


def create_app(config_overrides: dict | None = None) -> Flask:
    load_dotenv()

    app = Flask(__name__)
    app.config.from_object("ketus.config.Config")
    if config_overrides:
        app.config.update(config_overrides)
    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO))

    db.init_app(app)
    migrate.init_app(app, db)

    from ketus.chat import ConversationStore

    app.extensions["ketus_conversations"] = ConversationStore(
        history_limit=app.config["KETUS_CHAT_HISTORY_LIMIT"],
        max_conversations=app.config["KETUS_MAX_CONVERSATIONS"],
    )

    from ketus.routes import bp

    app.register_blueprint(bp)

    # Ensure model metadata is registered for migrations.
    from ketus import models  # noqa: F401

    @app.after_request
    def apply_security_headers(response):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        if app.config.get("SESSION_COOKIE_SECURE"):
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response

    return app
