"""Identity backend package.

Architecture:
- base.py: IdentityBackend interface consumed by the users resource mapper
- models.py: User and Role data types
- memory.py: In-process backend (demo mode, tests)
- client.py: HTTP client for the platform identity API
- remote.py: Backend delegating to the platform identity API
- exceptions.py: Typed exceptions for error handling

Usage:
    from usersapi.core.backend import InMemoryBackend

    backend = InMemoryBackend()
    user_id = backend.create_user("alice", "secret", "alice@example.com", role="author")
    backend.check_capability(user_id, "edit_posts")
"""
from .base import IdentityBackend
from .client import PlatformClient, REQUEST_TIMEOUT
from .exceptions import (
    BackendError,
    BackendValidationError,
    PlatformAPIError,
    UserNotFoundError,
)
from .memory import DEFAULT_ROLES, InMemoryBackend
from .models import Role, User
from .remote import RemoteIdentityBackend

__all__ = [
    "IdentityBackend",
    "InMemoryBackend",
    "RemoteIdentityBackend",
    "PlatformClient",
    "REQUEST_TIMEOUT",
    "DEFAULT_ROLES",
    "Role",
    "User",
    "BackendError",
    "BackendValidationError",
    "PlatformAPIError",
    "UserNotFoundError",
]
