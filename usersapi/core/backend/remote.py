"""Identity backend served by the platform's JSON HTTP API."""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from .base import IdentityBackend
from .client import PlatformClient
from .exceptions import BackendValidationError, PlatformAPIError, UserNotFoundError
from .models import Role, User

logger = logging.getLogger(__name__)

# Platform statuses reporting a rejected record
_VALIDATION_STATUSES = (400, 409, 422)


class RemoteIdentityBackend(IdentityBackend):
    """Delegates every backend call to the platform identity API."""

    def __init__(self, client: PlatformClient):
        self.client = client

    def lookup(self, user_id: int) -> Optional[User]:
        try:
            resp = self.client.get(f"/users/{int(user_id)}")
        except PlatformAPIError as exc:
            if exc.status_code == 404:
                return None
            raise
        return User.from_dict(resp.json())

    def query(self, args: Dict[str, Any]) -> List[User]:
        params = {}
        for key, value in args.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple, set)):
                params[key] = ",".join(str(v) for v in value)
            else:
                params[key] = value
        resp = self.client.get("/users", params=params)
        return [User.from_dict(item) for item in resp.json()]

    def insert(self, record: Dict[str, Any]) -> int:
        try:
            resp = self.client.post("/users", json=record)
        except PlatformAPIError as exc:
            if exc.status_code in _VALIDATION_STATUSES:
                raise BackendValidationError(exc.code, exc.message) from exc
            raise
        return int(resp.json()["id"])

    def update(self, record: Dict[str, Any]) -> int:
        user_id = int(record["ID"])
        try:
            resp = self.client.put(f"/users/{user_id}", json=record)
        except PlatformAPIError as exc:
            if exc.status_code == 404:
                raise UserNotFoundError(user_id) from exc
            if exc.status_code in _VALIDATION_STATUSES:
                raise BackendValidationError(exc.code, exc.message) from exc
            raise
        return int(resp.json().get("id", user_id))

    def delete(self, user_id: int, reassign: Optional[int] = None, force: bool = False) -> bool:
        params: Dict[str, Any] = {"force": "true" if force else "false"}
        if reassign is not None:
            params["reassign"] = reassign
        try:
            resp = self.client.delete(f"/users/{int(user_id)}", params=params)
        except PlatformAPIError as exc:
            logger.warning("Platform refused deletion of user %s: %s", user_id, exc)
            return False
        return bool(resp.json().get("deleted", False))

    def check_capability(self, user_id: Optional[int], capability: str, object_id: Optional[int] = None) -> bool:
        if not user_id:
            return False
        params = {"object_id": object_id} if object_id is not None else None
        try:
            resp = self.client.get(f"/users/{int(user_id)}/capabilities/{capability}", params=params)
        except PlatformAPIError as exc:
            if exc.status_code == 404:
                return False
            raise
        return bool(resp.json().get("granted", False))

    def resolve_role(self, name: str) -> Optional[Role]:
        try:
            resp = self.client.get(f"/roles/{name}")
        except PlatformAPIError as exc:
            if exc.status_code == 404:
                return None
            raise
        body = resp.json()
        return Role(
            name=body.get("name", name),
            display_name=body.get("display_name", name),
            capabilities=dict(body.get("capabilities") or {}),
        )
