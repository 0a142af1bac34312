import os
import time

from flask import Flask, g, request
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS

db = SQLAlchemy()
migrate = Migrate()


def create_app(testing: bool = False, config: dict = None):
    app = Flask(__name__, instance_relative_config=True)
    from .config import Config, TestingConfig
    app.config.from_object(TestingConfig if testing else Config)
    if config:
        app.config.update(config)
    if not app.config.get("QR_STORAGE_DIR"):
        app.config["QR_STORAGE_DIR"] = os.path.join(app.instance_path, "qrcodes")
    app.logger.setLevel(app.config["LOG_LEVEL"])

    CORS(app, resources={r"/api/*": {"origins": app.config["FRONTEND_URL"]}})
    db.init_app(app)
    migrate.init_app(app, db)

    from . import models  # noqa: F401
    from .errors import register_error_handlers
    from .provisioning import ProvisioningService
    from .repository import SystemRepository
    from .storage import blob_store_from_config

    app.extensions["provisioning"] = ProvisioningService.from_app(
        app, SystemRepository(db), blob_store_from_config(app.config)
    )
    register_error_handlers(app)

    @app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def log_api_request(response):
        if request.path.startswith("/api") and "request_started" in g:
            elapsed = (time.perf_counter() - g.request_started) * 1000
            app.logger.info("%s %s %s in %dms", request.method, request.path, response.status_code, elapsed)
        return response

    from .routes import bp as main_bp
    from .api import api as api_bp
    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp, url_prefix="/api")

    return app
