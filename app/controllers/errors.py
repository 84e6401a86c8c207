import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from ..exceptions import AppError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Render service errors and HTTP aborts as JSON bodies."""

    @app.errorhandler(AppError)
    def handle_app_error(e: AppError):
        logger.info("%s: %s", type(e).__name__, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        category = (e.name or "error").lower().replace(" ", "_")
        return jsonify({"error": category, "message": e.description}), e.code
