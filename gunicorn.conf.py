"""Gunicorn configuration for the users API.

Secrets are read by usersapi.config.settings in each worker:
1. /run/secrets (Docker secrets mount)
2. Environment variables (fallback)

The in-memory identity backend lives inside a worker process, so it is
only consistent with a single worker; threads share it safely.
"""
import os

wsgi_app = "usersapi.wsgi:app"
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:5000")
threads = int(os.environ.get("GUNICORN_THREADS", "4"))

if os.environ.get("IDENTITY_BACKEND", "memory").lower() == "memory":
    workers = 1
else:
    workers = int(os.environ.get("GUNICORN_WORKERS", "2"))


def post_fork(server, worker):
    """
    Called just after a worker has been forked.

    Reports which secrets are mounted so a misconfigured deployment is
    visible before the first request fails.
    """
    from pathlib import Path

    secrets_dir = Path("/run/secrets")
    if secrets_dir.exists() and secrets_dir.is_dir():
        secret_files = sorted(p.name for p in secrets_dir.glob("*") if p.is_file())
        if secret_files:
            worker.log.info(f"Found {len(secret_files)} secrets in /run/secrets: {', '.join(secret_files)}")
            return

    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"
    if not demo_mode and not os.environ.get("USERS_API_SECRET_KEY"):
        worker.log.warning("USERS_API_SECRET_KEY missing: the app will refuse to start outside demo mode")
    else:
        worker.log.info("No /run/secrets mount; using environment variables")
