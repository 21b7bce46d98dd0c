#!/usr/bin/env python3
"""
tokenauth -- command-line client for a tokenauth server.

Usage:
  python main.py register --username alice --password Secret1 --ethaddr 0x...
  python main.py login --username alice --password Secret1
  python main.py validate --token 1234567890123456789
  python main.py uuid --username alice
  python main.py username --uuid 3f2b...
  python main.py address --ethaddr 0x...
  python main.py address-username --ethaddr 0x...
  python main.py activate --ethaddr 0x...
  python main.py change-password --ethaddr 0x... --password NewSecret

Every subcommand accepts --auth URL (default: AUTH_SERVER_URL from settings).
Passwords are prehashed locally; the plaintext never leaves this process.
"""

import argparse
import sys
from typing import NoReturn, Optional
from uuid import UUID

from auth.models import AuthToken
from client.authc import AuthClient, AuthClientError
from core.config import get_settings


def _exit_with(message: str, code: int = 1) -> NoReturn:
    print(message)
    sys.exit(code)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tokenauth",
        description="Register accounts, sign in, and validate single-use tokens.",
    )
    auth_parent = argparse.ArgumentParser(add_help=False)
    auth_parent.add_argument(
        "--auth",
        metavar="URL",
        default=None,
        help="Auth server URL (default: AUTH_SERVER_URL setting)",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("register", parents=[auth_parent], help="Register a new account")
    p.add_argument("--username", required=True)
    p.add_argument("--password", required=True)
    p.add_argument("--ethaddr", required=True, help="Linked address: 0x + 40 hex digits")

    p = sub.add_parser("login", parents=[auth_parent], help="Sign in and print a token")
    p.add_argument("--username", required=True)
    p.add_argument("--password", required=True)

    p = sub.add_parser("validate", parents=[auth_parent], help="Consume a token and print its identity")
    p.add_argument("--token", required=True)

    p = sub.add_parser("uuid", parents=[auth_parent], help="Look up the UUID of a username")
    p.add_argument("--username", required=True)

    p = sub.add_parser("username", parents=[auth_parent], help="Look up the username of a UUID")
    p.add_argument("--uuid", required=True)

    p = sub.add_parser("address", parents=[auth_parent], help="Look up the account linked to an address")
    p.add_argument("--ethaddr", required=True)

    p = sub.add_parser("address-username", parents=[auth_parent], help="Look up the username linked to an address")
    p.add_argument("--ethaddr", required=True)

    p = sub.add_parser("activate", parents=[auth_parent], help="Activate the account linked to an address")
    p.add_argument("--ethaddr", required=True)

    p = sub.add_parser("change-password", parents=[auth_parent], help="Replace an account's password")
    p.add_argument("--ethaddr", required=True)
    p.add_argument("--password", required=True)

    return parser


def run(argv: Optional[list[str]] = None, client: Optional[AuthClient] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    # Parse local input before any network call.
    token: Optional[AuthToken] = None
    identity: Optional[UUID] = None
    if args.command == "validate":
        try:
            token = AuthToken.parse(args.token)
        except ValueError as e:
            _exit_with(f"failed to parse token: {e}")
    elif args.command == "username":
        try:
            identity = UUID(args.uuid)
        except ValueError as e:
            _exit_with(f"failed to parse uuid: {e}")

    if client is None:
        try:
            client = AuthClient(args.auth or get_settings().auth_server_url)
        except AuthClientError as e:
            _exit_with(str(e))

    try:
        if args.command == "register":
            client.register(args.username, args.password, args.ethaddr)
            print(f"Successfully registered {args.username}")
        elif args.command == "login":
            print(f"Auth Token: {client.sign_in(args.username, args.password).serialize()}")
        elif args.command == "validate":
            print(f"Successfully identified login token for user {client.validate(token)}")
        elif args.command == "uuid":
            print(f"UUID of {args.username}: {client.username_to_uuid(args.username)}")
        elif args.command == "username":
            print(f"Username of {identity}: {client.uuid_to_username(identity)}")
        elif args.command == "address":
            info = client.address_info(args.ethaddr)
            state = "activated" if info.get("activated") else "not activated"
            print(f"{args.ethaddr}: {info['username']} ({info['uuid']}), {state}")
        elif args.command == "address-username":
            print(f"Username of {args.ethaddr}: {client.address_to_username(args.ethaddr)}")
        elif args.command == "activate":
            info = client.activate(args.ethaddr)
            print(f"Activated {info['username']} ({args.ethaddr})")
        elif args.command == "change-password":
            client.change_password(args.ethaddr, args.password)
            print("Password changed.")
    except AuthClientError as e:
        _exit_with(f"{args.command} failed with: {e}")
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
