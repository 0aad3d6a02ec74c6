from __future__ import annotations

from flask import Flask, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from oracle.errors import OracleError, RequestNotFound
from raffle.errors import (
    CallbackRejected,
    InvalidAddress,
    InvalidRandomWords,
    RaffleError,
    RaffleNotOpen,
)

from .config import load_settings
from .db import engine
from .models import Base
from .routes.accounts import bp as accounts_bp
from .routes.health import bp as health_bp
from .routes.oracle import bp as oracle_bp
from .routes.raffle import bp as raffle_bp
from .services.raffles import raffle_repo

ERROR_STATUS = {
    RaffleNotOpen: 409,
    CallbackRejected: 403,
    InvalidAddress: 422,
    InvalidRandomWords: 422,
}


def status_for(exc: RaffleError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 400


def create_app() -> Flask:
    settings = load_settings()
    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.flask.secret_key
    Base.metadata.create_all(engine)
    raffle_repo.ensure_raffle()

    app.register_blueprint(health_bp)
    app.register_blueprint(raffle_bp, url_prefix="/raffle")
    app.register_blueprint(accounts_bp, url_prefix="/accounts")
    app.register_blueprint(oracle_bp, url_prefix="/oracle")

    @app.errorhandler(RaffleError)
    def handle_raffle_error(exc: RaffleError):
        app.logger.info("Rejected: %s (%s)", exc.code, exc.message)
        return jsonify({"error": exc.code, "message": exc.message}), status_for(exc)

    @app.errorhandler(OracleError)
    def handle_oracle_error(exc: OracleError):
        status = 404 if isinstance(exc, RequestNotFound) else 400
        return jsonify({"error": exc.code, "message": str(exc)}), status

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        details = exc.errors(include_url=False, include_context=False)
        return jsonify({"error": "validation_error", "message": details}), 422

    @app.errorhandler(Exception)
    def handle_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        app.logger.exception("Unhandled error: %s", exc)
        return jsonify({"error": "internal_error", "message": str(exc)}), 500

    return app
