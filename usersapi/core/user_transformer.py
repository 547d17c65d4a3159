"""User ↔ API data transformations.

This module provides the two mappings the users resource needs:
    - backend ``User`` → response field map, selected by context
    - request data → sparse backend mutation record

Usage:
    # User → response
    fields = UserTransformer.to_response(user, "view-private")

    # Request data → mutation record
    record = UserTransformer.to_record({"first_name": "Ada"})
"""
from __future__ import annotations
import hashlib
from datetime import timezone
from typing import Any, Dict

from usersapi.core.backend.models import User
from usersapi.core.validators import absint

DEFAULT_AVATAR_BASE_URL = "https://secure.gravatar.com/avatar"
DEFAULT_AVATAR_SIZE = 96

# request key -> record key, copied when the value is not None
_SET_IF_PRESENT = (
    ("username", "user_login"),
    ("password", "user_pass"),
    ("name", "display_name"),
    ("first_name", "first_name"),
    ("last_name", "last_name"),
    ("nickname", "nickname"),
)

# request key -> record key, copied when the value is truthy
_SET_IF_NOT_EMPTY = (
    ("slug", "user_nicename"),
    ("description", "description"),
    ("email", "user_email"),
    ("role", "role"),
)


class UserTransformer:
    """Context shaping and mutation-record building for user resources."""

    @staticmethod
    def avatar_url(email: str, base_url: str = DEFAULT_AVATAR_BASE_URL, size: int = DEFAULT_AVATAR_SIZE) -> str:
        """Build the avatar URL for an email without exposing the address."""
        digest = hashlib.md5((email or "").strip().lower().encode("utf-8")).hexdigest()
        return f"{base_url.rstrip('/')}/{digest}?s={size}"

    @staticmethod
    def to_response(
        user: User,
        context: str = "view",
        avatar_base_url: str = DEFAULT_AVATAR_BASE_URL,
        avatar_size: int = DEFAULT_AVATAR_SIZE,
    ) -> Dict[str, Any]:
        """Select the response fields for a user.

        Args:
            user: Backend user
            context: view, view-private or edit
            avatar_base_url: Avatar service base URL
            avatar_size: Avatar edge length in pixels

        Returns:
            Field map; each context is a superset of the previous one

        Example:
            >>> fields = UserTransformer.to_response(user, "view")
            >>> sorted(fields)
            ['avatar', 'description', 'id', 'name', 'slug', 'url']
        """
        fields: Dict[str, Any] = {
            "id": user.id,
            "name": user.display_name,
            "slug": user.nicename,
            "url": user.url,
            "avatar": UserTransformer.avatar_url(user.email, avatar_base_url, avatar_size),
            "description": user.description,
        }

        if context in ("view-private", "edit"):
            fields["username"] = user.login
            fields["first_name"] = user.first_name
            fields["last_name"] = user.last_name
            fields["nickname"] = user.nickname
            fields["roles"] = list(user.roles)
            fields["capabilities"] = dict(user.allcaps)
            fields["email"] = user.email

        if context == "edit":
            fields["extra_capabilities"] = dict(user.caps)
            fields["registered"] = user.registered.astimezone(timezone.utc).isoformat(timespec="seconds")

        return fields

    @staticmethod
    def to_record(data: Dict[str, Any]) -> Dict[str, Any]:
        """Build a sparse backend mutation record from request data.

        Keys absent from ``data`` are absent from the record, so an update
        leaves the corresponding stored values untouched.

        Args:
            data: Request payload (``id`` selects update mode)

        Returns:
            Record keyed with backend field names
        """
        record: Dict[str, Any] = {}

        user_id = absint(data.get("id"))
        if user_id:
            record["ID"] = user_id

        for source, target in _SET_IF_PRESENT:
            if data.get(source) is not None:
                record[target] = data[source]

        url = data.get("url") or data.get("URL")
        if url:
            record["user_url"] = url

        for source, target in _SET_IF_NOT_EMPTY:
            if data.get(source):
                record[target] = data[source]

        return record
