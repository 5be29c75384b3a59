#!/usr/bin/env python3
"""
FolderVault -- per-user folders and file uploads behind server-side sessions.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py serve --reload
  python main.py sweep-sessions

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Required unless DEBUG=true. Keys the stored session ids.
  DATABASE_URL   SQLAlchemy URL for users, sessions, folders and files.
  UPLOAD_ROOT    Directory that holds uploaded payloads.
"""

import argparse
import sys

from auth.credentials import CredentialManager
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _sweep_sessions(args: argparse.Namespace) -> int:
    """Delete expired sessions once, outside the server's own sweep loop."""
    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        manager = SessionManager(
            store,
            CredentialManager(settings.bcrypt_rounds),
            settings.secret_key,
            ttl_seconds=settings.session_ttl_seconds,
        )
        removed = manager.sweep()
    finally:
        store.close()
    print(f"  Removed {removed} expired session(s).")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="foldervault",
        description="Per-user folders and file uploads behind server-side sessions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve
  python main.py serve --port 8080 --reload
  DEBUG=true python main.py serve
  python main.py sweep-sessions
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=_serve)

    sweep = sub.add_parser("sweep-sessions", help="Delete expired sessions and exit")
    sweep.set_defaults(func=_sweep_sessions)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
