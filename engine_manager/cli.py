"""Command line interface for engine_manager."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, Optional

from .core.models import DiscoveryScope, KeyDomain
from .engines import DEFAULT_ENTRY_POINT_GROUP
from .services.query import QueryError, QueryService, create_service


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Discover engine factories and resolve engines by name, extension or mime type.",
    )
    parser.add_argument(
        "--group",
        default=DEFAULT_ENTRY_POINT_GROUP,
        help=f"Entry point group to discover factories from (default: {DEFAULT_ENTRY_POINT_GROUP}).",
    )
    parser.add_argument(
        "--scope",
        choices=[scope.value for scope in DiscoveryScope],
        help="Discovery scope; defaults to what the access policy allows.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log discovery and resolution details to stderr.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List discovered engine factories.")

    resolve_parser = subparsers.add_parser(
        "resolve", help="Resolve an engine and describe the factory that produced it."
    )
    key_group = resolve_parser.add_mutually_exclusive_group(required=True)
    key_group.add_argument("--name", help="Engine short name.")
    key_group.add_argument("--extension", help="File extension without the dot.")
    key_group.add_argument("--mime-type", dest="mime_type", help="Mime type.")

    return parser


def _service_from_args(args: argparse.Namespace) -> QueryService:
    scope = DiscoveryScope(args.scope) if args.scope else None
    return create_service(group=args.group, scope=scope)


def handle_list(args: argparse.Namespace) -> Dict[str, Any]:
    service = _service_from_args(args)
    return {
        "factories": service.list_factories(),
        "metadata": {"group": args.group, "scope": service.manager.scope.value},
    }


def handle_resolve(args: argparse.Namespace) -> Dict[str, Any]:
    if args.name is not None:
        domain, key = KeyDomain.NAME, args.name
    elif args.extension is not None:
        domain, key = KeyDomain.EXTENSION, args.extension
    else:
        domain, key = KeyDomain.MIME_TYPE, args.mime_type
    service = _service_from_args(args)
    return service.describe_resolution(domain, key)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )

    try:
        if args.command == "list":
            result = handle_list(args)
        elif args.command == "resolve":
            result = handle_resolve(args)
        else:  # pragma: no cover - defensive
            parser.error(f"Unknown command {args.command}")
            return 2
    except QueryError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    json.dump(result, sys.stdout, indent=2, ensure_ascii=False)
    print()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
