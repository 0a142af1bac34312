"""Error taxonomy for the inventory API and the handlers that render it.

Every error leaves the API as ``{"success": false, "error": <message>}``;
validation errors add a ``details`` list of ``{field, message}`` entries.
Dependency failures (database, blob store) are logged in full and answered
with a generic message.
"""

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError


class InventoryError(Exception):
    status_code = 500
    public_message = None

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.public_message or self.message}


class ValidationError(InventoryError):
    status_code = 400

    def __init__(self, details, message: str = "Validation failed"):
        super().__init__(message)
        self.details = list(details)

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["details"] = self.details
        return body


class NotFoundError(InventoryError):
    status_code = 404


class DependencyError(InventoryError):
    status_code = 500
    public_message = "Internal server error"


class BlobStoreError(DependencyError):
    pass


def field_error(field: str, message: str) -> dict:
    return {"field": field, "message": message}


def register_error_handlers(app):
    @app.errorhandler(InventoryError)
    def handle_inventory_error(e):
        if e.status_code >= 500:
            app.logger.error("dependency failure: %s", e.message, exc_info=e)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(e):
        app.logger.error("database error: %s", e, exc_info=e)
        return jsonify({"success": False, "error": "Internal server error"}), 500
