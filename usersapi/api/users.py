"""Users REST endpoints.

This module exposes the user accounts resource over HTTP and delegates all
business logic to the UserResourceMapper.

Architecture:
    HTTP (/api/users/*) -> usersapi/core/user_resource.py -> IdentityBackend

Security:
    - Optional Bearer token (HS256 JWT); anonymous callers get user id 0
    - Capability checks happen in the mapper, per operation and context
    - Request bodies above JSON_MAX_SIZE_BYTES are rejected (413)
"""

from __future__ import annotations
import logging
import re
from typing import Any, Dict

from flask import Blueprint, Response, current_app, g, jsonify, request

from usersapi.api.decorators import authenticate_request, current_user_id
from usersapi.core.backend import BackendError
from usersapi.core.errors import ApiError, ApiResponse, BackendFailure, PayloadTooLargeError, ValidationError
from usersapi.core.user_resource import UserResourceMapper

bp = Blueprint("users", __name__)

logger = logging.getLogger(__name__)

WRITE_METHODS = ("POST", "PUT", "PATCH")
LIST_FILTER_KEYS = ("include", "exclude")
TRUE_VALUES = ("1", "true", "yes", "on")

_FILTER_ARG = re.compile(r"^filter\[([A-Za-z0-9_]+)\]$")


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _api_root() -> str:
    """Public URL of the API root, used for Location headers."""
    cfg = current_app.config["APP_CONFIG"]
    origin = cfg.api_base_url or request.host_url.rstrip("/")
    return f"{origin}{cfg.api_url_prefix}"


def _mapper() -> UserResourceMapper:
    cfg = current_app.config["APP_CONFIG"]
    state = current_app.extensions["usersapi"]
    return UserResourceMapper(
        state["backend"],
        state["hooks"],
        current_user_id=current_user_id(),
        location_base=_api_root(),
        default_page_size=cfg.default_page_size,
        avatar_base_url=cfg.avatar_base_url,
        avatar_size=cfg.avatar_size,
    )


def _respond(result: ApiResponse) -> Response:
    response = jsonify(result.data)
    response.status_code = result.status
    for name, value in result.headers.items():
        response.headers[name] = value
    return response


def _list_filter() -> Dict[str, Any]:
    """Collect ``filter[key]=value`` query arguments."""
    filters: Dict[str, Any] = {}
    for name in request.args:
        match = _FILTER_ARG.match(name)
        if not match:
            continue
        key = match.group(1)
        values = request.args.getlist(name)
        if key in LIST_FILTER_KEYS:
            filters[key] = [part for value in values for part in value.split(",") if part.strip()]
        else:
            filters[key] = values[-1]
    return filters


def _payload() -> Dict[str, Any]:
    return g.get("payload") or {}


# ─────────────────────────────────────────────────────────────────────────────
# Error Handlers
# ─────────────────────────────────────────────────────────────────────────────

@bp.errorhandler(ApiError)
def handle_api_error(error: ApiError):
    """Render ApiError exceptions as JSON error bodies."""
    if error.status >= 500:
        logger.error("Users API error: %r", error)
    return jsonify(error.to_dict()), error.status


@bp.errorhandler(BackendError)
def handle_backend_error(error: BackendError):
    """Backend failures outside insert/update (lookups, capability checks)."""
    logger.error("Identity backend failure on %s %s: %s", request.method, request.path, error)
    failure = BackendFailure(error.code, error.message)
    return jsonify(failure.to_dict()), failure.status


# ─────────────────────────────────────────────────────────────────────────────
# Request Validation Middleware
# ─────────────────────────────────────────────────────────────────────────────

@bp.before_request
def validate_request():
    """Check payload size, authenticate the caller and parse JSON bodies."""
    cfg = current_app.config["APP_CONFIG"]

    if request.content_length and request.content_length > cfg.json_max_size_bytes:
        raise PayloadTooLargeError("json_payload_too_large", "Request payload too large.")

    g.current_user_id = authenticate_request()

    if request.method in WRITE_METHODS:
        if not request.get_data():
            g.payload = {}
            return None
        payload = request.get_json(force=True, silent=True)
        if not isinstance(payload, dict):
            raise ValidationError("json_invalid_body", "Request body must be a JSON object.")
        g.payload = payload


@bp.after_request
def add_correlation_id(response):
    """Echo the correlation ID for tracing."""
    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        response.headers["X-Correlation-Id"] = correlation_id
    return response


# ─────────────────────────────────────────────────────────────────────────────
# User CRUD Operations
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/users", methods=["GET"])
def list_users():
    """List users.

    Query parameters:
        - filter[key]: Query args forwarded to the backend (role, search,
          include, exclude, orderby, order, number)
        - context: view (default), view-private or edit
        - page: 1-based page number

    Returns:
        200 OK with a JSON array of users
    """
    users = _mapper().list_users(
        _list_filter(),
        context=request.args.get("context", "view"),
        page=request.args.get("page", 1),
    )
    return jsonify(users), 200


@bp.route("/users", methods=["POST"])
def create_user():
    """Create a user.

    Returns:
        201 Created with Location header and the user at ``context`` (edit)
    """
    result = _mapper().create(_payload(), context=request.args.get("context", "edit"))
    return _respond(result)


@bp.route("/users/me", methods=["GET"])
def current_user():
    """Point the caller at their own user resource.

    Returns:
        302 with Location header and the caller at view context
    """
    return _respond(_mapper().get_current_user())


@bp.route("/users/<user_id>", methods=["GET"])
def get_user(user_id: str):
    """Retrieve a user at ``context`` (view, view-private or edit)."""
    user = _mapper().get(user_id, context=request.args.get("context", "view"))
    return jsonify(user), 200


@bp.route("/users/<user_id>", methods=["PUT", "PATCH", "POST"])
def update_user(user_id: str):
    """Update the fields present in the body; other fields are left untouched."""
    result = _mapper().update(user_id, _payload(), context=request.args.get("context", "edit"))
    return _respond(result)


@bp.route("/users/<user_id>", methods=["DELETE"])
def delete_user(user_id: str):
    """Delete a user.

    Query parameters:
        - force: forwarded to the backend
        - reassign: user id receiving the deleted user's content
    """
    result = _mapper().delete(
        user_id,
        force=request.args.get("force", "").strip().lower() in TRUE_VALUES,
        reassign=request.args.get("reassign"),
    )
    return _respond(result)
