"""Error handlers for the application."""
from flask import jsonify
from werkzeug.exceptions import HTTPException

# status -> error code outside the users blueprint
HTTP_ERROR_CODES = {
    400: "json_bad_request",
    401: "json_unauthorized",
    403: "json_forbidden",
    404: "json_no_route",
    405: "json_method_not_allowed",
    413: "json_payload_too_large",
    500: "json_internal_error",
}


def _error_body(status: int, message: str):
    code = HTTP_ERROR_CODES.get(status, "json_http_error")
    return jsonify({"code": code, "message": message, "data": {"status": status}}), status


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request errors."""
        return _error_body(400, getattr(error, "description", None) or "Bad request.")

    @app.errorhandler(401)
    def unauthorized(error):
        """Handle 401 Unauthorized errors."""
        return _error_body(401, "Authentication required.")

    @app.errorhandler(403)
    def forbidden(error):
        """Handle 403 Forbidden errors."""
        return _error_body(403, "Insufficient permissions.")

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found errors."""
        return _error_body(404, "No route was found matching the URL and request method.")

    @app.errorhandler(405)
    def method_not_allowed(error):
        """Handle 405 Method Not Allowed errors."""
        return _error_body(405, "Method not allowed for this route.")

    @app.errorhandler(413)
    def payload_too_large(error):
        """Handle 413 errors raised by MAX_CONTENT_LENGTH."""
        return _error_body(413, "Request payload too large.")

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 Internal Server Error."""
        app.logger.error(f"Internal error: {error}", exc_info=True)
        return _error_body(500, "An unexpected error occurred.")

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        # Pass through HTTP errors
        if isinstance(error, HTTPException):
            return error

        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        return _error_body(500, "An unexpected error occurred.")
