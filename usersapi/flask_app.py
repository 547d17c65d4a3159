"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with the identity backend, hooks, audit trail and
all blueprints.
"""
from __future__ import annotations
from pathlib import Path
from typing import Optional

from flask import Flask, g, has_request_context
from werkzeug.middleware.proxy_fix import ProxyFix

from usersapi.config import AppConfig, load_settings
from usersapi.core.audit import AuditTrail
from usersapi.core.backend import (
    BackendValidationError,
    IdentityBackend,
    InMemoryBackend,
    PlatformClient,
    RemoteIdentityBackend,
)
from usersapi.core.hooks import Hooks


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None, backend: Optional[IdentityBackend] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        cfg: Configuration (loaded from the environment if omitted)
        backend: Identity backend (built from ``cfg`` if omitted)
    """
    if cfg is None:
        cfg = load_settings()

    app = Flask(__name__)
    app.config.setdefault(
        "OPENAPI_SPEC_PATH",
        str(Path(app.root_path) / "openapi" / "users_openapi.yaml"),
    )

    # Store config for easy access in routes
    app.config["APP_CONFIG"] = cfg
    app.config["SECRET_KEY"] = cfg.secret_key
    app.config["MAX_CONTENT_LENGTH"] = cfg.json_max_size_bytes

    # Trust X-Forwarded-* headers from proxy (nginx)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore

    if backend is None:
        backend = _build_backend(cfg)

    hooks = Hooks()
    audit = AuditTrail(cfg.audit_log_dir, cfg.audit_log_signing_key)
    _register_audit_actions(hooks, audit)

    if cfg.seeds_demo_admin and isinstance(backend, InMemoryBackend):
        _seed_demo_admin(backend, cfg)

    app.extensions["usersapi"] = {"backend": backend, "hooks": hooks, "audit": audit}

    # Register blueprints
    from usersapi.api import docs, errors, health, users

    app.register_blueprint(health.bp)
    app.register_blueprint(users.bp, url_prefix=cfg.api_url_prefix)
    app.register_blueprint(docs.bp)

    # Register error handlers
    errors.register_error_handlers(app)

    # Log startup info
    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    print(f"[flask_app] Mode={mode_label}")
    print(f"[flask_app] Users API registered at {cfg.api_url_prefix or ''}/users (backend={cfg.identity_backend})")

    if cfg.demo_mode:
        print("[flask_app] WARNING: Demo mode active - do not deploy with demo credentials")

    return app


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions
# ─────────────────────────────────────────────────────────────────────────────
def _build_backend(cfg: AppConfig) -> IdentityBackend:
    """Instantiate the identity backend named by IDENTITY_BACKEND."""
    if cfg.identity_backend == "remote":
        return RemoteIdentityBackend(PlatformClient(cfg.platform_url, cfg.platform_token))
    return InMemoryBackend(default_role=cfg.default_role)


def _seed_demo_admin(backend: InMemoryBackend, cfg: AppConfig) -> None:
    """Create the demo administrator (skipped if the login already exists)."""
    try:
        user_id = backend.create_user(
            cfg.demo_admin_username,
            cfg.demo_admin_password,
            cfg.demo_admin_email,
            role="administrator",
        )
    except BackendValidationError as exc:
        print(f"[flask_app] Demo administrator not seeded: {exc.message}")
        return
    print(f"[flask_app] Seeded demo administrator '{cfg.demo_admin_username}' (id={user_id})")
    print(f"[flask_app] Issue a token with: python -m usersapi.cli issue-token --user-id {user_id} (same USERS_API_SECRET_KEY)")


def _operator() -> str:
    """Who is performing the current mutation, for the audit trail."""
    if not has_request_context():
        return "system"
    user_id = g.get("current_user_id", 0)
    return f"user:{user_id}" if user_id else "anonymous"


def _register_audit_actions(hooks: Hooks, audit: AuditTrail) -> None:
    """Record user mutations in the signed audit trail."""

    @hooks.action("insert_user")
    def audit_insert_user(record, data, is_update):
        audit.safe_log_user_event(
            "user_updated" if is_update else "user_created",
            record["ID"],
            operator=_operator(),
            details={"fields": sorted(key for key in record if key not in ("ID", "user_pass"))},
        )

    @hooks.action("delete_user")
    def audit_delete_user(user_id, reassign):
        audit.safe_log_user_event(
            "user_deleted",
            user_id,
            operator=_operator(),
            details={"reassign": reassign},
        )
