import logging

import click
from flask import Flask, jsonify, send_from_directory
from werkzeug.exceptions import HTTPException

from .config import Config
from .controllers.admin import bp as admin_bp
from .controllers.approvals import bp as approvals_bp
from .controllers.auth import bp as auth_bp
from .controllers.cars import bp as cars_bp
from .controllers.rentals import bp as rentals_bp
from .controllers.sales import bp as sales_bp
from .exceptions import MarketError
from .models.store import Store
from .services.availability import reconcile_all
from .services.image_storage import LocalImageStorage

logger = logging.getLogger(__name__)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    Store.instance(app.config["DATA_PATH"], env=app.config["APP_ENV"])  # load data.pkl or init default
    app.register_blueprint(auth_bp)
    app.register_blueprint(cars_bp)
    app.register_blueprint(rentals_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(approvals_bp)
    app.register_blueprint(admin_bp)

    @app.get("/")
    def health():
        return jsonify({"message": "Car marketplace backend is running"})

    @app.get(f"{app.config['UPLOAD_URL_PREFIX'].rstrip('/')}/<path:handle>")
    def uploaded_image(handle):
        return send_from_directory(LocalImageStorage.instance().root, handle)

    _register_error_handlers(app)
    _register_commands(app)
    return app


def _register_error_handlers(app):
    @app.errorhandler(MarketError)
    def handle_market_error(err):
        return jsonify({"error": err.to_dict()}), err.status

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return jsonify({"error": {"kind": "HttpError", "message": err.description}}), err.code

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        logger.exception("Unhandled error")
        return jsonify({"error": {"kind": "ServerError", "message": "Something went wrong, try again."}}), 500


def _register_commands(app):
    @app.cli.command("reconcile")
    def reconcile_command():
        """Re-derive every car's availability from its rentals and sale state."""
        repaired = reconcile_all(Store.instance())
        click.echo(f"Repaired {len(repaired)} car(s)")
        for car_id in repaired:
            click.echo(f"  {car_id}")
