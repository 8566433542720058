#!/usr/bin/env python3
"""
taskauth -- operator CLI for the session service.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py sessions user@example.com
  python main.py sessions user@example.com --json
  python main.py chain JTI [--json]
  python main.py revoke-all user@example.com

Environment variables:
  SECRET_KEY    Required unless DEBUG=true. Must match the running API so
                issued tokens stay verifiable.
  DATABASE_URL  Same database the API uses. Defaults to ./taskauth.db.
"""

import argparse
import json
import sys

from auth.sessions import SessionManager
from auth.store import SessionStore, UserStore, to_iso
from core.config import get_settings


def _open_manager() -> SessionManager:
    db_url = get_settings().database_url
    return SessionManager(UserStore(db_url), SessionStore(db_url))


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def cmd_sessions(args: argparse.Namespace) -> int:
    """Print the user's active sessions (unrevoked, unexpired, current epoch)."""
    manager = _open_manager()
    try:
        user = manager.users.get_by_email(args.email)
        if user is None:
            print(f"  [!] No user with email '{args.email}'.")
            return 1
        active = manager.list_active_sessions(user.id)
        if args.json:
            rows = [
                {
                    "jti": s.jti,
                    "platform": s.platform.value,
                    "deviceLabel": s.device_label,
                    "ip": s.ip,
                    "createdAt": to_iso(s.created_at),
                    "lastUsedAt": to_iso(s.last_used_at),
                    "expiresAt": to_iso(s.expires_at),
                }
                for s in active
            ]
            print(json.dumps(rows, indent=2))
            return 0
        print(f"\n{user.email} -- {len(active)} active session(s), token_version={user.token_version}")
        print("─" * 40)
        for s in active:
            label = s.device_label or "-"
            print(f"  {s.jti}  {s.platform.value:<6}  {label:<24}  last used {to_iso(s.last_used_at)}")
        print()
        return 0
    finally:
        manager.sessions.close()
        manager.users.close()


def cmd_chain(args: argparse.Namespace) -> int:
    """Walk a refresh-token rotation chain forward from the given jti."""
    manager = _open_manager()
    try:
        chain = manager.sessions.get_chain(args.jti)
        if not chain:
            print(f"  [!] No session with jti '{args.jti}'.")
            return 1
        if args.json:
            rows = [
                {
                    "jti": s.jti,
                    "userId": s.user_id,
                    "platform": s.platform.value,
                    "tokenVersion": s.token_version,
                    "createdAt": to_iso(s.created_at),
                    "revokedAt": to_iso(s.revoked_at) if s.revoked_at else None,
                    "replacedByJti": s.replaced_by_jti,
                }
                for s in chain
            ]
            print(json.dumps(rows, indent=2))
            return 0
        print(f"\nRotation chain from {args.jti} -- {len(chain)} step(s)")
        print("─" * 40)
        for step, s in enumerate(chain, start=1):
            state = f"revoked {to_iso(s.revoked_at)}" if s.revoked_at else "live"
            print(f"  {step:>3}. {s.jti}  created {to_iso(s.created_at)}  {state}")
        print()
        return 0
    finally:
        manager.sessions.close()
        manager.users.close()


def cmd_revoke_all(args: argparse.Namespace) -> int:
    """Bump the user's token_version so every token they hold stops working."""
    manager = _open_manager()
    try:
        user = manager.users.get_by_email(args.email)
        if user is None:
            print(f"  [!] No user with email '{args.email}'.")
            return 1
        print(f"  {manager.revoke_all(user.id)} ({user.email})")
        return 0
    finally:
        manager.sessions.close()
        manager.users.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="taskauth",
        description="Operator commands for the taskauth session service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py sessions alice@example.com
  python main.py chain 3f0c2a9e-5b7d-4e8a-9c1f-2d6b8a4e7f10 --json
  python main.py revoke-all alice@example.com
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=cmd_serve)

    sessions = sub.add_parser("sessions", help="List a user's active sessions")
    sessions.add_argument("email")
    sessions.add_argument("--json", action="store_true", help="Output structured JSON")
    sessions.set_defaults(func=cmd_sessions)

    chain = sub.add_parser("chain", help="Show the rotation chain that starts at a session jti")
    chain.add_argument("jti")
    chain.add_argument("--json", action="store_true", help="Output structured JSON")
    chain.set_defaults(func=cmd_chain)

    revoke = sub.add_parser("revoke-all", help="Invalidate every token a user holds")
    revoke.add_argument("email")
    revoke.set_defaults(func=cmd_revoke_all)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
