"""Command line interface over credential JSON files.

A credential file holds one credential object or an array of them; ``-``
reads from stdin. Query text comes from ``--query`` or ``--query-file``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .config import get_settings
from .construct import construct_from_selection, extract_select
from .derivation import derive_credential, derive_credentials_from_construct
from .display import format_for_display
from .exceptions import CredgraphError, InvalidFormat
from .materialize import Materialization, materialize
from .query import binding_to_json, classify_query, execute_query
from .samples import available_sample_queries, sample_queries
from .serialize import combined_turtle, statements_to_turtle, to_turtle
from .types import DerivationTemplate, QueryKind
from .validation import check_conformance, validate_credential

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------

def _read(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def load_credentials(paths: list[str]) -> list[dict[str, Any]]:
    """Load raw credential documents from JSON files."""
    credentials: list[dict[str, Any]] = []
    for path in paths:
        try:
            data = json.loads(_read(path))
        except ValueError as exc:
            raise InvalidFormat(f"{path}: invalid JSON: {exc}", code="INVALID_JSON") from exc
        items = data if isinstance(data, list) else [data]
        for item in items:
            if not isinstance(item, dict):
                raise InvalidFormat(f"{path}: credential must be a JSON object")
            credentials.append(item)
    return credentials


def _query_text(args: argparse.Namespace) -> str:
    if args.query_file:
        return _read(args.query_file)
    return args.query or ""


def _rows(spec: str, count: int) -> list[int]:
    if spec == "all":
        return list(range(count))
    try:
        indices = [int(part) for part in spec.split(",") if part.strip()]
    except ValueError as exc:
        raise InvalidFormat(f"Invalid row selection {spec!r}") from exc
    for index in indices:
        if not 0 <= index < count:
            raise InvalidFormat(f"Row {index} out of range (preview has {count} rows)")
    return indices


def _dump(data: Any) -> None:
    print(json.dumps(data, indent=2))


def _materialize(credentials: list[dict[str, Any]]) -> Materialization:
    """Convert the sources once; report skipped credentials on stderr."""
    materialization = materialize(credentials)
    if materialization.failures:
        print(materialization.summary(), file=sys.stderr)
    return materialization


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_query(args: argparse.Namespace) -> int:
    text = _query_text(args)
    credentials = load_credentials(args.credentials)
    rows = execute_query(text, credentials, materialization=_materialize(credentials))
    _dump([binding_to_json(row) for row in rows])
    return 0


def cmd_extract(args: argparse.Namespace) -> int:
    extracted = extract_select(_query_text(args))
    _dump({"select": extracted.select_text, "variables": list(extracted.variables)})
    return 0


def _selection(args: argparse.Namespace, text: str, credentials: list) -> list[dict]:
    preview = execute_query(text, credentials, materialization=_materialize(credentials))
    return [preview[i] for i in _rows(args.rows, len(preview))]


def cmd_construct(args: argparse.Namespace) -> int:
    text = _query_text(args)
    credentials = load_credentials(args.credentials)
    selected = _selection(args, text, credentials)
    statements = construct_from_selection(text, selected, credentials)
    print(statements_to_turtle(statements) if statements else "# No statements constructed")
    return 0


def cmd_derive(args: argparse.Namespace) -> int:
    text = _query_text(args)
    credentials = load_credentials(args.credentials)
    template = DerivationTemplate(
        types=tuple(args.type or ("DerivedCredential",)),
        issuer=args.issuer,
        name=args.name,
        description=args.description,
    )
    if classify_query(text) is QueryKind.CONSTRUCT:
        selected = _selection(args, text, credentials)
        statements = construct_from_selection(text, selected, credentials)
        derived = derive_credentials_from_construct(statements, selected, credentials, template)
    else:
        derived = [derive_credential(
            text, credentials, template, materialization=_materialize(credentials),
        )]
    _dump([c.to_dict() for c in derived])
    return 0


def cmd_turtle(args: argparse.Namespace) -> int:
    credentials = load_credentials(args.credentials)
    if args.combined:
        print(combined_turtle(credentials))
        return 0
    for credential in credentials:
        print(f"# {credential.get('id', '')}")
        print(to_turtle(credential))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    credentials = load_credentials(args.credentials)
    status = 0
    valid = []
    for credential in credentials:
        try:
            valid.append(validate_credential(credential))
        except CredgraphError as exc:
            print(f"INVALID {credential.get('id', '?')}: [{exc.code}] {exc.message}")
            status = 1
            continue
        print(format_for_display(valid[-1]).summary())
    if valid and args.shacl:
        result = check_conformance(valid)
        print(result.summary())
        if not result.conforms or result.skipped:
            status = 1
    return status


def cmd_samples(args: argparse.Namespace) -> int:
    if args.credentials:
        samples = available_sample_queries(load_credentials(args.credentials))
    else:
        samples = sample_queries()
    for sample in samples:
        print(f"## {sample.name} ({sample.kind.name})")
        print(f"# {sample.description}")
        print(sample.query)
        print()
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def _add_query_args(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("-q", "--query", help="SPARQL query text")
    group.add_argument("-f", "--query-file", help="File holding the SPARQL query, '-' for stdin")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credgraph",
        description="Query verifiable credentials as RDF and derive new credentials",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  credgraph query -f names.rq citizenship.json degree.json
  credgraph extract -f profile.rq
  credgraph construct -f profile.rq --rows 0,1 creds.json
  credgraph derive -f profile.rq --rows all --type ProfileCredential creds.json
  credgraph turtle --combined creds.json
        """,
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p = subparsers.add_parser("query", help="Run a SELECT or preview a CONSTRUCT")
    _add_query_args(p)
    p.add_argument("credentials", nargs="*", help="Credential JSON files")
    p.set_defaults(func=cmd_query)

    p = subparsers.add_parser("extract", help="Show the preview SELECT of a CONSTRUCT")
    _add_query_args(p)
    p.set_defaults(func=cmd_extract)

    p = subparsers.add_parser("construct", help="Construct statements from picked preview rows")
    _add_query_args(p)
    p.add_argument("--rows", required=True, help="Comma-separated preview row indices, or 'all'")
    p.add_argument("credentials", nargs="+", help="Credential JSON files")
    p.set_defaults(func=cmd_construct)

    p = subparsers.add_parser("derive", help="Derive credentials from a query")
    _add_query_args(p)
    p.add_argument("--rows", default="all", help="Preview rows to use for CONSTRUCT (default: all)")
    p.add_argument("--type", action="append", help="Extra credential type (repeatable)")
    p.add_argument("--issuer", help="Issuer of the derived credentials")
    p.add_argument("--name", help="Display name")
    p.add_argument("--description", help="Description")
    p.add_argument("credentials", nargs="+", help="Credential JSON files")
    p.set_defaults(func=cmd_derive)

    p = subparsers.add_parser("turtle", help="Render credentials as Turtle")
    p.add_argument("--combined", action="store_true", help="One graph for all credentials")
    p.add_argument("credentials", nargs="+", help="Credential JSON files")
    p.set_defaults(func=cmd_turtle)

    p = subparsers.add_parser("validate", help="Check credential documents")
    p.add_argument("--shacl", action="store_true", help="Also run the SHACL graph check")
    p.add_argument("credentials", nargs="+", help="Credential JSON files")
    p.set_defaults(func=cmd_validate)

    p = subparsers.add_parser("samples", help="List sample queries")
    p.add_argument("credentials", nargs="*", help="Only list samples with results over these")
    p.set_defaults(func=cmd_samples)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = get_settings().log_level
    if args.verbose:
        level = "DEBUG" if args.verbose > 1 else "INFO"
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except CredgraphError as exc:
        print(f"Error [{exc.code}]: {exc.message}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
