"""Identity backend interface consumed by the users resource mapper."""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .models import Role, User


class IdentityBackend(ABC):
    """Storage, querying and authorization for user accounts.

    All calls are synchronous and authoritative. Mutation records are plain
    dicts keyed with backend-native field names (``ID``, ``user_login``,
    ``user_pass``, ``user_email``, ``role`` ...); a key that is absent means
    "leave untouched".
    """

    @abstractmethod
    def lookup(self, user_id: int) -> Optional[User]:
        """Return the user with this id, or None."""

    @abstractmethod
    def query(self, args: Dict[str, Any]) -> List[User]:
        """Return users matching filter/sort/pagination args."""

    @abstractmethod
    def insert(self, record: Dict[str, Any]) -> int:
        """Create a user and return its new id.

        Raises:
            BackendValidationError: If the record is rejected
        """

    @abstractmethod
    def update(self, record: Dict[str, Any]) -> int:
        """Update the user identified by ``record['ID']`` and return its id.

        Raises:
            UserNotFoundError: If the id does not exist
            BackendValidationError: If the record is rejected
        """

    @abstractmethod
    def delete(self, user_id: int, reassign: Optional[int] = None, force: bool = False) -> bool:
        """Delete a user, optionally reassigning their content. False on failure."""

    @abstractmethod
    def check_capability(self, user_id: Optional[int], capability: str, object_id: Optional[int] = None) -> bool:
        """Check whether ``user_id`` holds ``capability`` (optionally scoped to ``object_id``)."""

    @abstractmethod
    def resolve_role(self, name: str) -> Optional[Role]:
        """Return the role with this name, or None."""
