"""BookingX API entry point.

Changes:
  - 2026-02-20: serve / initdb / create-client / create-api-key / sweep subcommands.
"""

import argparse
import logging
import sys

from rich.console import Console
from rich.table import Table

from bookingx_api.config import get_settings
from bookingx_api.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _print_secret(title: str, rows: list[tuple[str, str]]) -> None:
    table = Table(title=title, show_header=False)
    table.add_column(style="bold")
    table.add_column()
    for label, value in rows:
        table.add_row(label, value)
    console = Console()
    console.print(table)
    console.print("[yellow]The secret above is shown only once. Store it now.[/yellow]")


def cmd_initdb(args: argparse.Namespace) -> int:
    from bookingx_api.services import get_services

    services = get_services()
    logger.info(
        "Credential store ready at %s",
        services.engine.url.render_as_string(hide_password=True),
    )
    return 0


def cmd_create_client(args: argparse.Namespace) -> int:
    from bookingx_api.services import get_services

    try:
        client, secret = get_services().clients.create_client(
            name=args.name,
            redirect_uris=args.redirect_uri or [],
            user_id=args.user_id,
            grant_types=args.grant_type,
            scope=args.scope,
        )
    except ValueError as e:
        logger.error("Could not create client: %s", e)
        return 1

    _print_secret(
        f"OAuth2 client: {client.name}",
        [
            ("client_id", client.client_id),
            ("client_secret", secret),
            ("grant_types", " ".join(client.grant_types)),
            ("redirect_uris", " ".join(client.redirect_uris)),
        ],
    )
    return 0


def cmd_create_api_key(args: argparse.Namespace) -> int:
    from bookingx_api.services import get_services

    try:
        record, plaintext = get_services().api_keys.create(
            name=args.name,
            user_id=args.user_id,
            permissions=args.permission,
            rate_limit=args.rate_limit,
        )
    except ValueError as e:
        logger.error("Could not create API key: %s", e)
        return 1

    _print_secret(
        f"API key: {record.name}",
        [
            ("key_id", record.key_id),
            ("key", plaintext),
            ("permissions", " ".join(record.permissions)),
            ("rate_limit", str(record.rate_limit) if record.rate_limit is not None else "default"),
        ],
    )
    return 0


def cmd_sweep(args: argparse.Namespace) -> int:
    from bookingx_api.maintenance import run_sweeps
    from bookingx_api.services import get_services

    counts = run_sweeps(get_services())
    if not counts:
        return 1
    logger.info("Sweep finished: %s", counts)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from bookingx_api.api.serve import run_api_server

    run_api_server(host=args.host, port=args.port, dev=args.dev)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookingx-api",
        description="BookingX API access control: OAuth2, API keys and rate limits",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bookingx-api serve --port 8000
  bookingx-api create-client --name "Mobile app" --redirect-uri https://app.example/cb
  bookingx-api create-api-key --name reporting --user-id 42 --permission reports:read
  bookingx-api sweep
""",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    serve.add_argument("--port", "-p", type=int, default=8000, help="Port (default: 8000)")
    serve.add_argument("--dev", action="store_true", help="Auto-reload on code changes")
    serve.set_defaults(func=cmd_serve)

    initdb = sub.add_parser("initdb", help="Create the credential store tables")
    initdb.set_defaults(func=cmd_initdb)

    client = sub.add_parser("create-client", help="Register an OAuth2 client")
    client.add_argument("--name", required=True)
    client.add_argument("--redirect-uri", action="append", help="Repeat for several URIs")
    client.add_argument(
        "--grant-type",
        action="append",
        help="authorization_code, refresh_token or client_credentials (repeatable)",
    )
    client.add_argument("--scope", default="", help="Space-separated default scope")
    client.add_argument("--user-id", default=None, help="Owning user")
    client.set_defaults(func=cmd_create_client)

    key = sub.add_parser("create-api-key", help="Create an API key")
    key.add_argument("--name", required=True)
    key.add_argument("--user-id", required=True)
    key.add_argument("--permission", action="append", help="Repeat for several permissions")
    key.add_argument("--rate-limit", type=int, default=None, help="Requests per window")
    key.set_defaults(func=cmd_create_api_key)

    sweep = sub.add_parser("sweep", help="Purge expired credentials and stale counters once")
    sweep.set_defaults(func=cmd_sweep)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(level=get_settings().log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
