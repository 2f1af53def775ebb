# app.py
from flask import Flask, jsonify
from flask_migrate import Migrate
from pathlib import Path
from flask_login import LoginManager
from flask_wtf.csrf import CSRFError
from sqlalchemy.exc import SQLAlchemyError
from config import get_config, DATA_DIR
from utilities.database import db, User
from utilities.errors import LifecycleError
from utilities.logger import setup_logger
from utilities.security import csrf, limiter
from auth import auth_bp
from main import main_bp
from categories import categories_bp
from employees import employees_bp
from assets import assets_bp
from exports import exports_bp

migrate = Migrate()

login_manager = LoginManager()
login_manager.login_view = "auth.login"


def create_app(config_object=None):
    app = Flask(__name__)

    # 1) Load config for the selected environment
    app.config.from_object(config_object or get_config())

    # 2) SQLite path hardening: ensure absolute, writable path BEFORE init_app
    data_dir = Path(app.config.get("DATA_DIR") or DATA_DIR)
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if uri.startswith("sqlite:///") and not uri.endswith(":memory:"):
        data_dir.mkdir(parents=True, exist_ok=True)
        raw_path = uri.replace("sqlite:///", "", 1).strip()
        filename = Path(raw_path).name if raw_path else "assetdesk.db"
        db_path = (data_dir / filename).resolve()
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path.as_posix()}"

    # 3) Logging
    logger = setup_logger("assetdesk", app.config.get("LOG_FILE"))
    logger.info("Using database %s", app.config["SQLALCHEMY_DATABASE_URI"])

    # 4) Init DB & migrations NOW that URI is final
    db.init_app(app)
    migrate.init_app(app, db)

    # 5) Optional dev-only schema bootstrap
    if app.config.get("AUTO_CREATE_SCHEMA"):
        with app.app_context():
            db.create_all()

    # 6) Blueprints
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(main_bp)  # '/' dashboard
    app.register_blueprint(categories_bp, url_prefix="/categories")
    app.register_blueprint(employees_bp, url_prefix="/employees")
    app.register_blueprint(assets_bp, url_prefix="/assets")
    app.register_blueprint(exports_bp, url_prefix="/exports")

    # 7) Health check
    @app.get("/health")
    def health():
        return {"ok": True}, 200

    # 8) Login manager
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str):
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "error": "Login required"}), 401

    # 9) CSRF protection and rate limiting (both switchable from config)
    csrf.init_app(app)
    limiter.init_app(app)

    # 10) Error handlers
    @app.errorhandler(LifecycleError)
    def handle_lifecycle_error(error):
        db.session.rollback()
        return jsonify({"success": False, "error": error.message}), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_store_error(error):
        db.session.rollback()
        logger.exception("Store error")
        return jsonify({"success": False, "error": str(error)}), 500

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error):
        return jsonify({"success": False, "error": error.description}), 400

    @app.errorhandler(429)
    def handle_429(error):
        return jsonify({"success": False, "error": f"Too many requests: {error.description}"}), 429

    @app.errorhandler(403)
    def handle_403(error):
        return jsonify({"success": False, "error": "Admin access required"}), 403

    @app.errorhandler(404)
    def handle_404(error):
        return jsonify({"success": False, "error": "Not found"}), 404

    @app.errorhandler(500)
    def handle_500(error):
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return app


# For `flask --app app run`, having create_app is enough.
