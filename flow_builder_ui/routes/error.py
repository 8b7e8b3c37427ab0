"""Error handlers for the Flow Builder UI.

Maps repository errors to JSON error responses for the whole application.
"""

from http import HTTPStatus

from flask import Blueprint, jsonify
from survey_assist_utils.logging import get_logger

from utils.errors import DatabaseError, NotFoundError, ValidationError

error_blueprint = Blueprint("error", __name__)

logger = get_logger(__name__)


@error_blueprint.app_errorhandler(NotFoundError)
def not_found(err: NotFoundError):
    """Returns 404 for missing entities."""
    return jsonify({"error": err.message}), HTTPStatus.NOT_FOUND


@error_blueprint.app_errorhandler(ValidationError)
def bad_request(err: ValidationError):
    """Returns 400 for invalid input."""
    return jsonify({"error": err.message}), HTTPStatus.BAD_REQUEST


@error_blueprint.app_errorhandler(DatabaseError)
def store_failure(err: DatabaseError):
    """Returns 502 when the record store fails."""
    logger.error(f"Record store failure: {err.message} ({err.cause})")
    return jsonify({"error": err.message}), HTTPStatus.BAD_GATEWAY


@error_blueprint.app_errorhandler(HTTPStatus.NOT_FOUND)
def page_not_found(e=None):
    """Returns 404 for unknown routes."""
    return jsonify({"error": "Page not found"}), HTTPStatus.NOT_FOUND
