# Copyright 2026 Derived Fields Contributors
# SPDX-License-Identifier: Apache-2.0

"""Entry point for the derived-fields command-line interface."""

import argparse
import json
import logging
import sys
from pathlib import Path

from derived_fields.compiler.errors import RequestError, SchemaError
from derived_fields.compiler.schema import initialize_schema
from derived_fields.config.loader import ConfigError, load_schema_document
from derived_fields.query.expander import expand_request

# ###############
# Public Interface
# ###############


def main() -> None:
    """Run the derived-fields CLI."""
    parser = argparse.ArgumentParser(
        prog="derived-fields",
        description="Derived field schema checker and request expander",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log schema initialization and expansion details",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # check subcommand
    check_parser = subparsers.add_parser(
        "check",
        help="Validate and close a schema document",
        description="Validate every derived field of a schema document and report all problems.",
    )
    check_parser.add_argument("schema", help="Path to the YAML schema document")

    # expand subcommand
    expand_parser = subparsers.add_parser(
        "expand",
        help="Expand a request against a schema document",
        description="Print the expanded request and the injected fields and joins as JSON.",
    )
    expand_parser.add_argument("schema", help="Path to the YAML schema document")
    expand_parser.add_argument("entity", help="Entity the request is made against")
    expand_parser.add_argument(
        "--request",
        default="{}",
        help='Request as JSON, e.g. \'{"attributes": ["Label"]}\' (default: all fields)',
    )

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    sys.exit(_dispatch(args))


# ################
# Implementation
# ################


def _dispatch(args: argparse.Namespace) -> int:
    """Dispatch to the appropriate subcommand handler."""
    if args.command == "check":
        return _cmd_check(args)
    if args.command == "expand":
        return _cmd_expand(args)
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    """Handle the check subcommand."""
    try:
        document = load_schema_document(Path(args.schema))
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    try:
        schema = initialize_schema(document.registry)
    except SchemaError as exc:
        for diagnostic in exc.diagnostics:
            print(f"Error: {diagnostic}", file=sys.stderr)
        return 1

    print(
        f"Checked {len(document.registry.entities)} entity(ies), {len(schema.requirements)} derived field(s)."
    )
    print("No issues found.")
    return 0


def _cmd_expand(args: argparse.Namespace) -> int:
    """Handle the expand subcommand."""
    try:
        request = json.loads(args.request)
    except json.JSONDecodeError as exc:
        print(f"Error: --request is not valid JSON: {exc}", file=sys.stderr)
        return 1
    if not isinstance(request, dict):
        print("Error: --request must be a JSON object", file=sys.stderr)
        return 1

    try:
        document = load_schema_document(Path(args.schema))
        schema = initialize_schema(document.registry)
        result = expand_request(schema, args.entity, request, options=document.options)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except SchemaError as exc:
        for diagnostic in exc.diagnostics:
            print(f"Error: {diagnostic}", file=sys.stderr)
        return 1
    except RequestError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    output = {
        "request": result.request.to_dict(),
        "injected": [
            {"kind": marker.kind.value, "path": list(marker.path), "name": marker.name} for marker in result.injected
        ],
    }
    print(json.dumps(output, indent=2))
    return 0
