"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
import secrets
from dataclasses import dataclass
from typing import Optional
from pathlib import Path

from usersapi.core.user_transformer import DEFAULT_AVATAR_BASE_URL, DEFAULT_AVATAR_SIZE

IDENTITY_BACKENDS = ("memory", "remote")


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            print(f"[settings] ✓ Loaded {env_var} from environment (fallback)")
            return secret_value

    return None


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Token signing
    secret_key: str
    token_issuer: str = "usersapi"

    # HTTP surface
    api_url_prefix: str = "/api"
    api_base_url: str = ""
    json_max_size_bytes: int = 1024 * 1024

    # Users resource
    default_page_size: int = 10
    default_role: str = "subscriber"
    avatar_base_url: str = DEFAULT_AVATAR_BASE_URL
    avatar_size: int = DEFAULT_AVATAR_SIZE

    # Identity backend
    identity_backend: str = "memory"
    platform_url: str = ""
    platform_token: str = ""

    # Audit
    audit_log_dir: str = ".runtime/audit"
    audit_log_signing_key: str = ""

    # Demo administrator (seeded into the in-memory backend)
    demo_admin_username: str = ""
    demo_admin_password: str = ""
    demo_admin_email: str = ""

    @property
    def seeds_demo_admin(self) -> bool:
        return (
            self.demo_mode
            and self.identity_backend == "memory"
            and bool(self.demo_admin_username and self.demo_admin_password and self.demo_admin_email)
        )


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or use demo default."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        print(f"[demo-mode] Using default for {var_name}")
        os.environ[var_name] = demo_default
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def _get_int(var_name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(var_name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {var_name} must be an integer (got {raw!r}).")
    if value < minimum:
        raise RuntimeError(f"Environment variable {var_name} must be >= {minimum} (got {value}).")
    return value


def _normalize_prefix(prefix: str) -> str:
    prefix = "/" + prefix.strip().strip("/")
    return "" if prefix == "/" else prefix


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"

    # ─────────────────────────────────────────────────────────────────────────
    # Secrets: /run/secrets > environment variables
    # ─────────────────────────────────────────────────────────────────────────

    secret_key = _load_secret_from_file("users_api_secret_key", "USERS_API_SECRET_KEY")
    if not secret_key:
        if not demo_mode:
            raise RuntimeError("USERS_API_SECRET_KEY not found in /run/secrets or environment")
        secret_key = secrets.token_urlsafe(48)
        os.environ["USERS_API_SECRET_KEY"] = secret_key
        print("[demo-mode] Generated temporary USERS_API_SECRET_KEY")

    platform_token = _load_secret_from_file("platform_token", "PLATFORM_TOKEN") or ""

    audit_log_signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY")
    if not audit_log_signing_key and demo_mode:
        audit_log_signing_key = os.environ.get(
            "AUDIT_LOG_SIGNING_KEY_DEMO", "demo-audit-signing-key-change-in-production"
        )
        print(f"[demo-mode] Using demo AUDIT_LOG_SIGNING_KEY: {audit_log_signing_key[:20]}...")

    # ─────────────────────────────────────────────────────────────────────────
    # Identity backend
    # ─────────────────────────────────────────────────────────────────────────

    identity_backend = os.environ.get("IDENTITY_BACKEND", "memory").strip().lower()
    if identity_backend not in IDENTITY_BACKENDS:
        raise RuntimeError(
            f"IDENTITY_BACKEND must be one of {', '.join(IDENTITY_BACKENDS)} (got {identity_backend!r})."
        )

    platform_url = os.environ.get("PLATFORM_URL", "").strip().rstrip("/")
    if identity_backend == "remote" and not platform_url:
        raise RuntimeError("PLATFORM_URL is required when IDENTITY_BACKEND=remote.")

    # ─────────────────────────────────────────────────────────────────────────
    # HTTP surface and resource defaults
    # ─────────────────────────────────────────────────────────────────────────

    api_url_prefix = _normalize_prefix(os.environ.get("API_URL_PREFIX", "/api"))
    api_base_url = os.environ.get("API_BASE_URL", "").strip().rstrip("/")

    default_role = os.environ.get("DEFAULT_ROLE", "subscriber").strip().lower() or "subscriber"

    # Demo administrator
    demo_admin_username = _get_or_generate(
        "DEMO_ADMIN_USERNAME", demo_default="admin", required=False, demo_mode=demo_mode
    )
    demo_admin_password = _get_or_generate(
        "DEMO_ADMIN_PASSWORD",
        demo_default=(os.environ.get("DEMO_ADMIN_PASSWORD_DEMO") or "admin"),
        required=False,
        demo_mode=demo_mode,
    )
    demo_admin_email = _get_or_generate(
        "DEMO_ADMIN_EMAIL", demo_default="admin@example.com", required=False, demo_mode=demo_mode
    )

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    print(f"[settings] Mode={mode_label}; backend={identity_backend}; prefix={api_url_prefix or '/'}")

    if demo_mode:
        print("[settings] WARNING: Demo credentials in use. Do not deploy with these defaults.")

    return AppConfig(
        demo_mode=demo_mode,
        secret_key=secret_key,
        token_issuer=os.environ.get("TOKEN_ISSUER", "usersapi").strip() or "usersapi",
        api_url_prefix=api_url_prefix,
        api_base_url=api_base_url,
        json_max_size_bytes=_get_int("JSON_MAX_SIZE_BYTES", 1024 * 1024, minimum=1),
        default_page_size=_get_int("DEFAULT_PAGE_SIZE", 10, minimum=1),
        default_role=default_role,
        avatar_base_url=os.environ.get("AVATAR_BASE_URL", DEFAULT_AVATAR_BASE_URL).strip() or DEFAULT_AVATAR_BASE_URL,
        avatar_size=_get_int("AVATAR_SIZE", DEFAULT_AVATAR_SIZE, minimum=1),
        identity_backend=identity_backend,
        platform_url=platform_url,
        platform_token=platform_token,
        audit_log_dir=os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"),
        audit_log_signing_key=audit_log_signing_key or "",
        demo_admin_username=demo_admin_username,
        demo_admin_password=demo_admin_password,
        demo_admin_email=demo_admin_email,
    )
