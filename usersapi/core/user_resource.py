"""
Users Resource Mapper: CRUD over the identity backend

This module maps list/get/create/update/delete requests for user accounts
onto an injected identity backend, checks the caller's capabilities, and
shapes results by context (view, view-private, edit).

Architecture:
    HTTP (/api/users/*) ──> user_resource.py ──> IdentityBackend ──> platform

Features:
    - Context-capped field visibility shared by list and single reads
    - Sparse create/update records (absent keys are never reset)
    - Filter hooks (user_query, pre_insert_user) and notification
      actions (insert_user, delete_user)
    - Uniform errors via ApiError (code, message, status)
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from usersapi.core.backend import (
    BackendError,
    BackendValidationError,
    IdentityBackend,
    User,
    UserNotFoundError,
)
from usersapi.core.errors import (
    ApiResponse,
    BackendFailure,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    UnknownContextError,
    ValidationError,
)
from usersapi.core.hooks import Hooks
from usersapi.core.user_transformer import (
    DEFAULT_AVATAR_BASE_URL,
    DEFAULT_AVATAR_SIZE,
    UserTransformer,
)
from usersapi.core.validators import absint, is_known_context, sanitize_url

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
REQUIRED_CREATE_FIELDS = ("username", "password", "email")
STRING_FIELDS = (
    "username", "password", "email", "name", "first_name", "last_name",
    "nickname", "slug", "description",
)


class UserResourceMapper:
    """Request-scoped mapper between the users API and an identity backend.

    A mapper is built for one caller and holds no state between calls; all
    persistence and authorization decisions belong to the backend.
    """

    def __init__(
        self,
        backend: IdentityBackend,
        hooks: Optional[Hooks] = None,
        current_user_id: Optional[int] = 0,
        location_base: str = "",
        default_page_size: int = DEFAULT_PAGE_SIZE,
        avatar_base_url: str = DEFAULT_AVATAR_BASE_URL,
        avatar_size: int = DEFAULT_AVATAR_SIZE,
    ):
        """Initialize the mapper.

        Args:
            backend: Identity backend
            hooks: Hook registry (a private empty one if omitted)
            current_user_id: Authenticated caller id, 0 when logged out
            location_base: API root used to build resource URLs
            default_page_size: Page size when a list request sets none
            avatar_base_url: Avatar service base URL
            avatar_size: Avatar edge length in pixels
        """
        self.backend = backend
        self.hooks = hooks if hooks is not None else Hooks()
        self.current_user_id = absint(current_user_id)
        self.location_base = location_base.rstrip("/")
        self.default_page_size = default_page_size
        self.avatar_base_url = avatar_base_url
        self.avatar_size = avatar_size

    # ─────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────

    def _can(self, capability: str, object_id: Optional[int] = None) -> bool:
        return self.backend.check_capability(self.current_user_id, capability, object_id)

    def resource_url(self, user_id: int) -> str:
        return f"{self.location_base}/users/{user_id}"

    def lookup(self, user_id: Any) -> User:
        """Resolve a user id through the backend.

        Raises:
            NotFoundError: 404 if no such user
        """
        user_id = absint(user_id)
        user = self.backend.lookup(user_id) if user_id else None
        if user is None:
            raise NotFoundError("json_invalid_user", "Invalid user.")
        return user

    # ─────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────

    def list_users(self, filter: Optional[Dict[str, Any]] = None, context: str = "view", page: Any = 1) -> List[Dict[str, Any]]:
        """List users visible to the caller.

        Args:
            filter: Extra query args merged over the default ordering
            context: Shaping context applied to every row
            page: 1-indexed page number

        Returns:
            Shaped users (empty list when nothing matches)

        Raises:
            ForbiddenError: 403 without the list_users capability
        """
        if not self._can("list_users"):
            raise ForbiddenError("json_user_cannot_list", "Sorry, you are not allowed to list users.")

        filter = dict(filter or {})
        args: Dict[str, Any] = {"orderby": "user_login", "order": "ASC"}
        args.update(filter)
        args = self.hooks.apply_filters("user_query", args, filter, context, page)

        args["number"] = absint(args["number"]) if args.get("number") else self.default_page_size
        page = max(1, absint(page))
        args["offset"] = (page - 1) * args["number"]

        users = self.backend.query(args)
        if not users:
            return []

        # Rows are re-read through the single-item path
        return [self.get(user.id, context) for user in users]

    def get(self, user_id: Any, context: str = "view") -> Dict[str, Any]:
        """Read a single user shaped for ``context``.

        Raises:
            NotFoundError: 404 if no such user
            ForbiddenError: 403 if the caller may not use this context
            UnknownContextError: 400 for an unrecognised context
        """
        user = self.lookup(user_id)
        self.check_context_permission(user, context)
        return self.prepare(user, context)

    def create(self, data: Dict[str, Any], context: str = "edit") -> ApiResponse:
        """Create a user.

        Returns:
            201 response with a Location header and the new user

        Raises:
            ForbiddenError: 403 without the create_users capability
            ValidationError: 400 when an id is supplied or input is invalid
        """
        if not self._can("create_users"):
            raise ForbiddenError("json_cannot_create", "Sorry, you are not allowed to create users.")

        if absint(data.get("id")):
            raise ValidationError("json_user_exists", "Cannot create existing user.")

        user_id = self._insert_user(dict(data))

        response = ApiResponse(self.get(user_id, context), status=201)
        response.header("Location", self.resource_url(user_id))
        return response

    def update(self, user_id: Any, data: Dict[str, Any], context: str = "edit") -> ApiResponse:
        """Update a user from the keys present in ``data``.

        ``context`` is accepted for symmetry with :meth:`create`; the
        updated user is always returned at ``edit`` context.

        Raises:
            NotFoundError: 404 if no such user
            ForbiddenError: 403 without edit_user on the target
            ValidationError: 400 on invalid input
        """
        user = self.lookup(user_id)

        if not self._can("edit_user", user.id):
            raise ForbiddenError("json_user_cannot_edit", "Sorry, you are not allowed to edit this user.")

        data = dict(data)
        data["id"] = user.id

        self._insert_user(data)

        return ApiResponse(self.get(user.id, "edit"))

    def delete(self, user_id: Any, force: bool = False, reassign: Any = None) -> ApiResponse:
        """Delete a user, optionally handing their content to ``reassign``.

        Raises:
            NotFoundError: 404 if no such user
            ForbiddenError: 403 without delete_user on the target
            ValidationError: 400 for a zero, self or unknown reassign id
            BackendFailure: 500 if the backend could not delete
        """
        user = self.lookup(user_id)

        if not self._can("delete_user", user.id):
            raise ForbiddenError("json_user_cannot_delete", "Sorry, you are not allowed to delete this user.")

        if reassign:
            reassign = absint(reassign)
            if not reassign or reassign == user.id or self.backend.lookup(reassign) is None:
                raise ValidationError("json_user_invalid_reassign", "Invalid user ID.")
        else:
            reassign = None

        if not self.backend.delete(user.id, reassign=reassign, force=force):
            raise BackendFailure("json_cannot_delete", "The user cannot be deleted.")

        logger.info("Deleted user %s (reassign=%s, force=%s)", user.id, reassign, force)
        self.hooks.do_action("delete_user", user.id, reassign)

        return ApiResponse({"message": "Deleted user"})

    def get_current_user(self) -> ApiResponse:
        """Redirect-style response pointing at the caller's own resource.

        Raises:
            UnauthorizedError: 401 when logged out
        """
        if not self.current_user_id:
            raise UnauthorizedError("json_not_logged_in", "You are not currently logged in.")

        user = self.lookup(self.current_user_id)
        response = ApiResponse(self.get(user.id, "view"), status=302)
        response.header("Location", self.resource_url(user.id))
        return response

    # ─────────────────────────────────────────────────────────────────────
    # Permission check & shaping
    # ─────────────────────────────────────────────────────────────────────

    def check_context_permission(self, user: User, context: str) -> None:
        """Check whether the caller may read ``user`` at ``context``.

        Raises:
            ForbiddenError: 403 if the caller lacks the capability
            UnknownContextError: 400 for an unrecognised context
        """
        if self.current_user_id and self.current_user_id == user.id and is_known_context(context):
            return

        if context == "view":
            # TODO: restrict to users who have authored content
            if self._can("edit_posts"):
                return
            raise ForbiddenError("json_user_cannot_view", "Sorry, you cannot view this user.")

        if context == "view-private":
            if self._can("list_users"):
                return
            raise ForbiddenError("json_user_cannot_view", "Sorry, you cannot view this user.")

        if context == "edit":
            if self._can("edit_user", user.id):
                return
            raise ForbiddenError("json_user_cannot_edit", "Sorry, you cannot edit this user.")

        raise UnknownContextError("json_error_unknown_context", "Unknown context specified.")

    def prepare(self, user: User, context: str) -> Dict[str, Any]:
        return UserTransformer.to_response(user, context, self.avatar_base_url, self.avatar_size)

    # ─────────────────────────────────────────────────────────────────────
    # Insert / update
    # ─────────────────────────────────────────────────────────────────────

    def _insert_user(self, data: Dict[str, Any]) -> int:
        """Validate ``data``, then create or update through the backend.

        Returns:
            The created or updated user id

        Raises:
            ValidationError: 400 for missing fields, bad URL/role, hook veto
                or a record the backend rejects
            BackendFailure: 500 if the backend fails
        """
        record = UserTransformer.to_record(data)
        is_update = "ID" in record

        if not is_update:
            for field in REQUIRED_CREATE_FIELDS:
                if not data.get(field):
                    raise ValidationError("json_missing_callback_param", f"Missing parameter {field}")

        for field in STRING_FIELDS:
            if data.get(field) is not None and not isinstance(data[field], str):
                raise ValidationError("json_invalid_param", f"Invalid parameter {field}")

        url = record.get("user_url")
        if url is not None and (not isinstance(url, str) or sanitize_url(url) != url):
            raise ValidationError("json_invalid_url", "Invalid user URL.")

        role = record.get("role")
        if role is not None and (not isinstance(role, str) or self.backend.resolve_role(role) is None):
            raise ValidationError("json_invalid_role", "Invalid role.")

        record = self.hooks.apply_filters("pre_insert_user", record, data)

        try:
            user_id = self.backend.update(record) if is_update else self.backend.insert(record)
        except UserNotFoundError:
            raise NotFoundError("json_invalid_user", "Invalid user.")
        except BackendValidationError as exc:
            raise ValidationError(exc.code, exc.message)
        except BackendError as exc:
            logger.error("Backend failed to %s user: %s", "update" if is_update else "insert", exc)
            raise BackendFailure(exc.code, exc.message)

        record["ID"] = user_id
        logger.info(
            "%s user %s (fields=%s)",
            "Updated" if is_update else "Created",
            user_id,
            sorted(key for key in record if key not in ("ID", "user_pass")),
        )

        self.hooks.do_action("insert_user", record, data, is_update)

        return user_id
