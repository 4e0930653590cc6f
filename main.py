#!/usr/bin/env python3
"""
authgate -- Operator commands for the token service.

Usage:
  python main.py keygen
  python main.py keygen --private-key keys/private.pem --public-key keys/public.pem --bits 4096
  python main.py cleanup

Environment variables:
  DATABASE_URL           SQLAlchemy URL of the token database (cleanup).
  JWT_PRIVATE_KEY_PATH   Default private key path (keygen).
  JWT_PUBLIC_KEY_PATH    Default public key path (keygen).
  RSA_KEY_BITS           Default modulus size (keygen).

The API server itself is started with:  uvicorn api.main:app
"""

import argparse
import logging
import sys

from auth.errors import KeyMaterialError
from auth.keys import generate_and_save_key_pair
from auth.store import create_store_engine
from auth.sweeper import sweep
from auth.token_store import RefreshTokenStore, RevocationLedger
from core.config import get_settings


def cmd_keygen(args: argparse.Namespace) -> int:
    """Generate an RS256 signing key pair and write both PEM files."""
    try:
        generate_and_save_key_pair(args.private_key, args.public_key, bits=args.bits)
    except KeyMaterialError as e:
        print(f"  [!] {e}")
        return 1
    print(f"  Private key: {args.private_key} (mode 0600)")
    print(f"  Public key:  {args.public_key}")
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    """Run one expiry sweep against the configured database."""
    settings = get_settings()
    engine = create_store_engine(settings.database_url, settings.db_busy_timeout_seconds)
    try:
        result = sweep(RefreshTokenStore(engine), RevocationLedger(engine))
    finally:
        engine.dispose()
    print(f"  Deleted {result.refresh_tokens_deleted} expired refresh token(s).")
    print(f"  Deleted {result.blacklist_entries_deleted} expired blacklist entries.")
    return 0


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    parser = argparse.ArgumentParser(
        prog="authgate",
        description="authgate -- RS256 token service operator commands.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command")

    keygen = sub.add_parser("keygen", help="Generate an RSA signing key pair.")
    keygen.add_argument(
        "--private-key",
        default=str(settings.jwt_private_key_path),
        help="Where to write the private key PEM (default: %(default)s).",
    )
    keygen.add_argument(
        "--public-key",
        default=str(settings.jwt_public_key_path),
        help="Where to write the public key PEM (default: %(default)s).",
    )
    keygen.add_argument(
        "--bits",
        type=int,
        default=settings.rsa_key_bits,
        help="RSA modulus size in bits, minimum 2048 (default: %(default)s).",
    )
    keygen.set_defaults(func=cmd_keygen)

    cleanup = sub.add_parser("cleanup", help="Delete expired refresh tokens and blacklist entries once.")
    cleanup.set_defaults(func=cmd_cleanup)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
