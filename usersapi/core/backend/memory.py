"""In-process identity backend.

Holds users, roles and authored-content ownership in memory. Used as the
default backend in demo mode and as the substitutable fake in tests.
"""
from __future__ import annotations
import copy
import fnmatch
import logging
import re
import secrets
import threading
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from usersapi.core.validators import absint, sanitize_username, slugify, validate_email

from .base import IdentityBackend
from .exceptions import BackendValidationError, UserNotFoundError
from .models import Role, User

logger = logging.getLogger(__name__)


_READ = {"read": True}
_CONTRIBUTOR = {**_READ, "edit_posts": True, "delete_posts": True}
_AUTHOR = {
    **_CONTRIBUTOR,
    "upload_files": True,
    "publish_posts": True,
    "edit_published_posts": True,
    "delete_published_posts": True,
}
_EDITOR = {
    **_AUTHOR,
    "edit_others_posts": True,
    "delete_others_posts": True,
    "edit_pages": True,
    "publish_pages": True,
    "moderate_comments": True,
    "manage_categories": True,
}
_ADMINISTRATOR = {
    **_EDITOR,
    "list_users": True,
    "create_users": True,
    "edit_users": True,
    "delete_users": True,
    "promote_users": True,
    "remove_users": True,
    "manage_options": True,
}

DEFAULT_ROLES = (
    Role("administrator", "Administrator", _ADMINISTRATOR),
    Role("editor", "Editor", _EDITOR),
    Role("author", "Author", _AUTHOR),
    Role("contributor", "Contributor", _CONTRIBUTOR),
    Role("subscriber", "Subscriber", _READ),
)

# Meta capabilities resolved against the target user
_META_CAPS = {
    "edit_user": "edit_users",
    "delete_user": "delete_users",
    "promote_user": "promote_users",
    "remove_user": "remove_users",
}

_ORDERBY_FIELDS = {
    "ID": "id",
    "id": "id",
    "user_login": "login",
    "login": "login",
    "display_name": "display_name",
    "name": "display_name",
    "user_email": "email",
    "email": "email",
    "user_registered": "registered",
    "registered": "registered",
    "user_nicename": "nicename",
    "nicename": "nicename",
}

_SEARCH_FIELDS = ("login", "email", "url", "display_name", "nicename")


class InMemoryBackend(IdentityBackend):
    """Dictionary-backed identity store with role-based capabilities."""

    def __init__(self, roles: Optional[Iterable[Role]] = None, default_role: str = "subscriber"):
        """Initialize the store.

        Args:
            roles: Role definitions (defaults to the built-in role set)
            default_role: Role assigned when an insert does not name one
        """
        self._lock = threading.RLock()
        self._roles: Dict[str, Role] = {role.name: role for role in (roles or DEFAULT_ROLES)}
        self._users: Dict[int, User] = {}
        self._content: Dict[int, int] = {}
        self._next_user_id = 1
        self._next_content_id = 1
        self.default_role = default_role

    # ─────────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────────

    def lookup(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self._users.get(absint(user_id))
            return copy.deepcopy(user) if user else None

    def query(self, args: Dict[str, Any]) -> List[User]:
        with self._lock:
            users = list(self._users.values())

        role = args.get("role")
        if role:
            users = [u for u in users if role in u.roles]

        include = args.get("include")
        if include:
            wanted = {absint(i) for i in include}
            users = [u for u in users if u.id in wanted]

        exclude = args.get("exclude")
        if exclude:
            unwanted = {absint(i) for i in exclude}
            users = [u for u in users if u.id not in unwanted]

        search = args.get("search")
        if search:
            users = [u for u in users if self._matches_search(u, str(search))]

        field = _ORDERBY_FIELDS.get(str(args.get("orderby", "user_login")), "login")
        descending = str(args.get("order", "ASC")).upper() == "DESC"
        users.sort(key=lambda u: self._sort_key(u, field), reverse=descending)

        offset = max(0, int(args.get("offset") or 0))
        number = int(args.get("number") or 0)
        users = users[offset:offset + number] if number > 0 else users[offset:]

        return [copy.deepcopy(u) for u in users]

    @staticmethod
    def _sort_key(user: User, field: str):
        value = getattr(user, field)
        return value.lower() if isinstance(value, str) else value

    @staticmethod
    def _matches_search(user: User, search: str) -> bool:
        if "*" in search:
            pattern = re.compile(fnmatch.translate(search.lower()))
            return any(pattern.match(getattr(user, f).lower()) for f in _SEARCH_FIELDS)
        needle = search.lower()
        return any(needle in getattr(user, f).lower() for f in _SEARCH_FIELDS)

    def resolve_role(self, name: str) -> Optional[Role]:
        return self._roles.get(name)

    def check_capability(self, user_id: Optional[int], capability: str, object_id: Optional[int] = None) -> bool:
        if not user_id:
            return False

        with self._lock:
            user = self._users.get(absint(user_id))
        if user is None:
            return False

        if capability == "edit_user" and object_id is not None and absint(object_id) == user.id:
            return True

        capability = _META_CAPS.get(capability, capability)
        return bool(user.allcaps.get(capability))

    def check_password(self, user_id: int, password: str) -> bool:
        user = self.lookup(user_id)
        if user is None or not user.password_hash:
            return False
        return check_password_hash(user.password_hash, password)

    # ─────────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────────

    def insert(self, record: Dict[str, Any]) -> int:
        with self._lock:
            login = sanitize_username(str(record.get("user_login") or ""))
            if not login:
                raise BackendValidationError("empty_user_login", "Cannot create a user with an empty login name.")
            if self._find_by_login(login) is not None:
                raise BackendValidationError("existing_user_login", "Sorry, that username already exists!")

            email = self._checked_email(record.get("user_email", ""), exclude_id=None)
            role = record.get("role") or self.default_role
            self._require_role(role)

            user = User(
                id=self._next_user_id,
                login=login,
                email=email,
                display_name=record.get("display_name") or login,
                nicename=self._unique_nicename(record.get("user_nicename") or login, exclude_id=None),
                url=record.get("user_url", ""),
                description=record.get("description", ""),
                first_name=record.get("first_name", ""),
                last_name=record.get("last_name", ""),
                nickname=record.get("nickname") or login,
                password_hash=generate_password_hash(record.get("user_pass") or secrets.token_urlsafe(24)),
            )
            self._set_role(user, role)

            self._users[user.id] = user
            self._next_user_id += 1

        logger.info("[memory-backend] Inserted user %s (id=%s, role=%s)", login, user.id, role)
        return user.id

    def update(self, record: Dict[str, Any]) -> int:
        user_id = absint(record.get("ID"))
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                raise UserNotFoundError(user_id)
            user = replace(current, roles=list(current.roles), caps=dict(current.caps))

            if "user_login" in record:
                login = sanitize_username(str(record["user_login"] or ""))
                if not login:
                    raise BackendValidationError("empty_user_login", "Cannot create a user with an empty login name.")
                existing = self._find_by_login(login)
                if existing is not None and existing.id != user_id:
                    raise BackendValidationError("existing_user_login", "Sorry, that username already exists!")
                user.login = login

            if "user_email" in record:
                user.email = self._checked_email(record["user_email"], exclude_id=user_id)

            if record.get("user_pass"):
                user.password_hash = generate_password_hash(record["user_pass"])

            if "user_nicename" in record:
                user.nicename = self._unique_nicename(record["user_nicename"], exclude_id=user_id)

            for key, attr in (
                ("display_name", "display_name"),
                ("first_name", "first_name"),
                ("last_name", "last_name"),
                ("nickname", "nickname"),
                ("user_url", "url"),
                ("description", "description"),
            ):
                if key in record:
                    setattr(user, attr, record[key] if record[key] is not None else "")

            if record.get("role"):
                self._require_role(record["role"])
                self._set_role(user, record["role"])

            self._users[user_id] = user

        logger.info("[memory-backend] Updated user %s (fields=%s)", user_id, sorted(k for k in record if k != "ID"))
        return user_id

    def delete(self, user_id: int, reassign: Optional[int] = None, force: bool = False) -> bool:
        user_id = absint(user_id)
        with self._lock:
            if user_id not in self._users:
                return False
            if reassign is not None:
                if reassign not in self._users:
                    return False
                for content_id, author in list(self._content.items()):
                    if author == user_id:
                        self._content[content_id] = reassign
            else:
                for content_id, author in list(self._content.items()):
                    if author == user_id:
                        del self._content[content_id]
            del self._users[user_id]

        logger.info("[memory-backend] Deleted user %s (reassign=%s, force=%s)", user_id, reassign, force)
        return True

    # ─────────────────────────────────────────────────────────────────────
    # Convenience helpers (seeding, tests)
    # ─────────────────────────────────────────────────────────────────────

    def create_user(self, login: str, password: str, email: str, role: Optional[str] = None, **fields) -> int:
        """Insert a user from friendly keyword arguments."""
        record = {"user_login": login, "user_pass": password, "user_email": email, **fields}
        if role:
            record["role"] = role
        return self.insert(record)

    def add_cap(self, user_id: int, capability: str, granted: bool = True) -> None:
        """Grant (or explicitly deny) a capability to a single user."""
        with self._lock:
            user = self._users.get(absint(user_id))
            if user is None:
                raise UserNotFoundError(user_id)
            user.caps[capability] = granted
            self._refresh_allcaps(user)

    def add_content(self, author_id: int) -> int:
        """Record a piece of authored content and return its id."""
        with self._lock:
            content_id = self._next_content_id
            self._content[content_id] = absint(author_id)
            self._next_content_id += 1
            return content_id

    def content_author(self, content_id: int) -> Optional[int]:
        with self._lock:
            return self._content.get(content_id)

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _find_by_login(self, login: str) -> Optional[User]:
        for user in self._users.values():
            if user.login == login:
                return user
        return None

    def _checked_email(self, raw: Any, exclude_id: Optional[int]) -> str:
        if not raw:
            return ""
        try:
            email = validate_email(str(raw))
        except ValueError:
            raise BackendValidationError("invalid_email", "Sorry, that email address is not allowed!")
        for user in self._users.values():
            if user.id != exclude_id and user.email.lower() == email.lower():
                raise BackendValidationError("existing_user_email", "Sorry, that email address is already used!")
        return email

    def _unique_nicename(self, raw: str, exclude_id: Optional[int]) -> str:
        base = slugify(str(raw)) or "user"
        taken = {u.nicename for u in self._users.values() if u.id != exclude_id}
        candidate, suffix = base, 2
        while candidate in taken:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    def _require_role(self, name: str) -> None:
        if name not in self._roles:
            raise BackendValidationError("invalid_role", f"Role '{name}' does not exist")

    def _set_role(self, user: User, role: str) -> None:
        for old in user.roles:
            user.caps.pop(old, None)
        user.roles = [role]
        user.caps[role] = True
        self._refresh_allcaps(user)

    def _refresh_allcaps(self, user: User) -> None:
        allcaps: Dict[str, bool] = {}
        for name in user.roles:
            role = self._roles.get(name)
            if role:
                allcaps.update(role.capabilities)
        allcaps.update(user.caps)
        user.allcaps = allcaps
