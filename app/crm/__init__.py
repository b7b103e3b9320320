import logging

from flask import Flask
from dotenv import load_dotenv

from app.crm import models as _models  # noqa: F401  (registers tables on Base.metadata)
from app.crm.config import load_config
from app.crm.db import init_db
from app.crm.errors import register_error_handlers
from app.crm.routes import bp as routes_bp
from app.crm.modules.customers.api import bp as customers_bp, init_customer_repository


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates")
    app.config.from_mapping(load_config())
    app.json.sort_keys = False
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and app.config.get("DATABASE_URL_IS_FALLBACK"):
        raise RuntimeError("CRM_DB_CONNECTION_STRING is required in production.")

    # Raises DatabaseUnavailable; the entry point turns that into process exit.
    init_db(app)
    init_customer_repository(app)

    register_error_handlers(app)
    app.register_blueprint(routes_bp)
    app.register_blueprint(customers_bp)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
