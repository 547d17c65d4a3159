"""Command-line helpers for operating the users API.

Usage:
    python -m usersapi.cli issue-token --user-id 1 [--ttl 600]
    python -m usersapi.cli verify-audit [--log-dir .runtime/audit]
"""
from __future__ import annotations
import argparse
import contextlib
import os
import sys
from typing import Optional, Sequence

from usersapi.api.decorators import issue_token
from usersapi.config.settings import _get_int, _load_secret_from_file
from usersapi.core.audit import AuditTrail


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(prog="usersapi", description="Users API helper")
    sub = parser.add_subparsers(dest="cmd")

    it = sub.add_parser("issue-token", help="Print a bearer token for a user id")
    it.add_argument("--user-id", type=int, required=True)
    it.add_argument("--ttl", type=int, help="Token lifetime in seconds (default: TOKEN_TTL_SECONDS or 3600)")
    it.add_argument("--issuer", default=os.environ.get("TOKEN_ISSUER", "usersapi"))

    va = sub.add_parser("verify-audit", help="Verify audit trail signatures")
    va.add_argument("--log-dir", default=os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"))

    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return 0

    if args.cmd == "issue-token":
        if args.user_id < 1:
            parser.error("--user-id must be a positive integer")
        if args.ttl is None:
            try:
                args.ttl = _get_int("TOKEN_TTL_SECONDS", 3600, minimum=1)
            except RuntimeError as e:
                print(f"[issue-token] Error: {e}", file=sys.stderr)
                return 1
        elif args.ttl < 1:
            parser.error("--ttl must be a positive integer")
        with contextlib.redirect_stdout(sys.stderr):
            secret_key = _load_secret_from_file("users_api_secret_key", "USERS_API_SECRET_KEY")
        if not secret_key:
            print("[issue-token] Error: USERS_API_SECRET_KEY is not set", file=sys.stderr)
            return 1
        print(issue_token(args.user_id, secret_key, args.issuer, ttl_seconds=args.ttl))
        return 0

    if args.cmd == "verify-audit":
        signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY") or ""
        total, valid = AuditTrail(args.log_dir, signing_key).verify()
        print(f"Audit log: {valid}/{total} events with valid signatures")
        return 0 if total == valid else 1

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
