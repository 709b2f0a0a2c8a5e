"""Blobgate CLI.

Usage:
    python -m blobgate serve [--host HOST] [--port PORT]
    python -m blobgate migrate [--revision REV]
    python -m blobgate store --file PATH [--content-type TYPE] [--tag KEY=VALUE ...]
    python -m blobgate query --tag KEY=VALUE [--tag ...] [--first N] [--after CURSOR]
    python -m blobgate resolve ITEM_ID [--expires-in SECONDS]

All commands except serve read configuration from BLOBGATE_* environment
variables and print JSON to stdout.

Exit codes:
    0: Success
    1: Internal error
    2: Rejected (invalid input, not found, unauthorized, configuration)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from blobgate.context import GatewayContext
from blobgate.errors import GatewayError

logger = logging.getLogger(__name__)


def _output_json(data: dict[str, Any]) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _make_error_result(code: str, message: str) -> dict[str, Any]:
    return {"error": {"code": code, "message": message}}


def _parse_tag(raw: str) -> tuple[str, str]:
    key, sep, value = raw.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"Tag must be KEY=VALUE, got {raw!r}")
    return key, value


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the API under uvicorn."""
    import uvicorn

    from blobgate.api.main import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=args.log_level)
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    """Apply tag index migrations."""
    from blobgate.persistence.migrate import run_upgrade

    run_upgrade(revision=args.revision)
    _output_json({"migrated_to": args.revision})
    return 0


def cmd_store(args: argparse.Namespace, context: GatewayContext) -> int:
    body = Path(args.file).read_bytes()
    result = context.gateway.store(body, args.content_type, args.tag)
    _output_json(result.to_dict())
    return 0


def cmd_query(args: argparse.Namespace, context: GatewayContext) -> int:
    page = context.gateway.query_by_tags(args.tag, first=args.first, after=args.after)
    _output_json(
        {
            "items": [
                {
                    "id": r.dataitem_id,
                    "content_type": r.content_type,
                    "created_at": r.created_at.isoformat(),
                }
                for r in page.items
            ],
            "has_more": page.has_more,
            "next_cursor": page.next_cursor,
        }
    )
    return 0


def cmd_resolve(args: argparse.Namespace, context: GatewayContext) -> int:
    url = context.gateway.resolve(args.item_id, expires_in=args.expires_in)
    _output_json({"id": args.item_id, "url": url})
    return 0


CONTEXT_COMMANDS = {
    "store": cmd_store,
    "query": cmd_query,
    "resolve": cmd_resolve,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="blobgate",
        description="Blobgate - content-addressed object gateway",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--log-level", default="info")

    migrate_parser = subparsers.add_parser("migrate", help="Apply tag index migrations")
    migrate_parser.add_argument("--revision", default="head")

    store_parser = subparsers.add_parser("store", help="Sign and store a file")
    store_parser.add_argument("--file", required=True, metavar="PATH")
    store_parser.add_argument("--content-type", default="application/octet-stream")
    store_parser.add_argument(
        "--tag",
        action="append",
        type=_parse_tag,
        default=[],
        metavar="KEY=VALUE",
        help="Extra tag (repeatable)",
    )

    query_parser = subparsers.add_parser("query", help="Find items by tags")
    query_parser.add_argument(
        "--tag",
        action="append",
        type=_parse_tag,
        default=[],
        metavar="KEY=VALUE",
        help="Filter tag (repeatable, ANDed)",
    )
    query_parser.add_argument("--first", type=int, default=25)
    query_parser.add_argument("--after", default=None, metavar="CURSOR")

    resolve_parser = subparsers.add_parser("resolve", help="Print a download URL")
    resolve_parser.add_argument("item_id")
    resolve_parser.add_argument("--expires-in", type=int, default=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Internal error (unexpected)
        2: Gateway rejected the operation
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "serve":
            return cmd_serve(args)
        if args.command == "migrate":
            return cmd_migrate(args)

        context = GatewayContext.from_env()
        try:
            return CONTEXT_COMMANDS[args.command](args, context)
        finally:
            context.close()

    except GatewayError as e:
        _output_json(_make_error_result(type(e).__name__, str(e)))
        return 2
    except Exception as e:
        logger.exception("Command %s failed", args.command)
        _output_json(_make_error_result("INTERNAL_ERROR", str(e)))
        return 1


if __name__ == "__main__":
    sys.exit(main())
