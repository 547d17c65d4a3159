"""Identity backend data types."""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass
class Role:
    """A named role and the capabilities it grants."""
    name: str
    display_name: str
    capabilities: Dict[str, bool] = field(default_factory=dict)


@dataclass
class User:
    """User account as stored by the identity backend.

    ``caps`` holds the raw per-user grants (role names and explicit
    capabilities); ``allcaps`` is the effective capability map resolved from
    roles plus explicit grants.
    """
    id: int
    login: str
    email: str = ""
    display_name: str = ""
    nicename: str = ""
    url: str = ""
    description: str = ""
    first_name: str = ""
    last_name: str = ""
    nickname: str = ""
    roles: List[str] = field(default_factory=list)
    caps: Dict[str, bool] = field(default_factory=dict)
    allcaps: Dict[str, bool] = field(default_factory=dict)
    registered: datetime = field(default_factory=_utcnow)
    password_hash: str = field(default="", repr=False)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "User":
        """Build a user from the platform's JSON representation."""
        registered = payload.get("registered")
        if isinstance(registered, str) and registered:
            registered_dt: Optional[datetime] = datetime.fromisoformat(registered.replace("Z", "+00:00"))
        else:
            registered_dt = None
        if registered_dt is not None and registered_dt.tzinfo is None:
            registered_dt = registered_dt.replace(tzinfo=timezone.utc)

        return cls(
            id=int(payload["id"]),
            login=payload.get("login", ""),
            email=payload.get("email", ""),
            display_name=payload.get("display_name", ""),
            nicename=payload.get("nicename", ""),
            url=payload.get("url", ""),
            description=payload.get("description", ""),
            first_name=payload.get("first_name", ""),
            last_name=payload.get("last_name", ""),
            nickname=payload.get("nickname", ""),
            roles=list(payload.get("roles") or []),
            caps=dict(payload.get("caps") or {}),
            allcaps=dict(payload.get("allcaps") or {}),
            registered=registered_dt or _utcnow(),
            password_hash=payload.get("password_hash", ""),
        )
