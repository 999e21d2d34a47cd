"""Up/Down Trader - Operator CLI

Usage:
    python -m updown [--version] [--log-level LEVEL] COMMAND

Commands:
    check       - Derive API credentials and report the account mode
    balance     - Show balance/allowance for a conditional token
    cancel-all  - Cancel every open order on the account

Examples:
    python -m updown check
    python -m updown balance --token 1234...
    python -m updown --log-level DEBUG cancel-all
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from updown import __version__


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="updown",
        description="Pre-start Up/Down round trader for Polymarket",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"updown {__version__}",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (defaults to LOG_LEVEL)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("check", help="Verify credentials against the CLOB")

    balance = subparsers.add_parser("balance", help="Show token balance and allowance")
    balance.add_argument("--token", required=True, help="Conditional token id")

    subparsers.add_parser("cancel-all", help="Cancel all open orders")

    return parser.parse_args(argv)


async def check_credentials(settings) -> int:
    """Derive API credentials and print the account mode."""
    from updown.integrations.polymarket.clob import CLOBClient

    if not settings.private_key:
        print("PRIVATE_KEY is not set")
        return 1

    client = CLOBClient(settings)
    try:
        await client.connect()
    except Exception as e:
        print(f"Credential check failed: {e}")
        return 1

    mode = "proxy" if settings.proxy_mode else "EOA"
    print(f"Connected to {settings.clob_http_url}")
    print(f"Account mode: {mode} (signature type {settings.signature_type})")
    if settings.proxy_mode:
        print(f"Funder: {settings.funder_address}")
    print(f"API key: {client.api_key_prefix}...")
    await client.close()
    return 0


async def show_balance(settings, token_id: str) -> int:
    """Print balance and allowance for one token."""
    from updown.integrations.polymarket.clob import CLOBClient

    try:
        async with CLOBClient(settings) as client:
            balances = await client.get_balance_allowance(token_id)
    except Exception as e:
        print(f"Balance query failed: {e}")
        return 1

    print(f"Token: {token_id}")
    print(f"Balance:   {balances.balance:.4f} shares")
    print(f"Allowance: {balances.allowance:.4f} shares")
    return 0


async def cancel_all(settings) -> int:
    """Cancel every open order on the account."""
    from updown.integrations.polymarket.clob import CLOBClient

    try:
        async with CLOBClient(settings) as client:
            await client.cancel_all()
    except Exception as e:
        print(f"Cancel failed: {e}")
        return 1

    print("All open orders cancelled")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])

    from updown.core.config import load_settings
    from updown.core.errors import ConfigurationError
    from updown.core.logging import setup_logging

    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(e.message)
        return 2

    setup_logging(level=args.log_level or settings.log_level, json_output=settings.log_json)

    if args.command == "check":
        return asyncio.run(check_credentials(settings))

    if args.command == "balance":
        return asyncio.run(show_balance(settings, args.token))

    if args.command == "cancel-all":
        return asyncio.run(cancel_all(settings))

    return 1


if __name__ == "__main__":
    sys.exit(main())
