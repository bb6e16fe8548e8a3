#!/usr/bin/env python3
"""
mongo-uri-doctor CLI - connection string diagnostics

Usage:
    python -m mongo_uri_doctor.cli analyze           # Structural report for MONGO_URI
    python -m mongo_uri_doctor.cli parts             # Parsed parts
    python -m mongo_uri_doctor.cli variants          # Variants that would be probed
    python -m mongo_uri_doctor.cli probe             # Connect once
    python -m mongo_uri_doctor.cli probe --all-variants
    python -m mongo_uri_doctor.cli env               # Which settings are set
"""

import os
import sys
import json
import argparse
import logging
from typing import List, Optional

from .analyzer import analyze_connection_string
from .core.config import PROBE_OPERATIONS, Settings, setup_logging
from .errors import MalformedURI, MissingConnectionString
from .masking import is_sensitive, mask_password, mask_value
from .prober import ConnectionProber, probe_variants
from .report import format_probe_results, format_report, redact_report, to_json
from .uri_parser import parse_connection_string
from .variations import generate_variants, list_variants

# Fix Windows console encoding for Unicode
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding='utf-8', errors='replace')
    sys.stderr.reconfigure(encoding='utf-8', errors='replace')

logger = logging.getLogger(__name__)

CONFIG_VARIABLES = [
    "MONGO_URI",
    "EXPECTED_SCHEME",
    "EXPECTED_DOMAIN_SUFFIX",
    "EXPECTED_QUERY_PARAMS",
    "ALTERNATE_HOSTS",
    "PROBE_TIMEOUT_MS",
    "PROBE_OPERATION",
    "PROBE_RATE_LIMIT",
    "SERVER_HOST",
    "SERVER_PORT",
    "CORS_ORIGINS",
    "LOG_LEVEL",
    "SHOW_SECRETS",
]


def _display(uri: str, show_secrets: bool) -> str:
    return uri if show_secrets else mask_password(uri)


def cmd_analyze(uri: str, settings: Settings, args) -> int:
    report = analyze_connection_string(
        uri,
        expected_scheme=settings.expected_scheme,
        expected_domain_suffix=settings.expected_domain_suffix,
        expected_parameters=settings.expected_query_params,
    )
    report = redact_report(report, show_secrets=args.show_secrets)
    if args.json:
        print(to_json(report))
    else:
        print(f"URI: {_display(uri, args.show_secrets)}")
        print(format_report(report))
    return 0


def cmd_parts(uri: str, settings: Settings, args) -> int:
    try:
        parsed = parse_connection_string(uri.strip(), at_split=args.split)
    except MalformedURI as e:
        print(f"✗ {e.reason}: {_display(uri, args.show_secrets)}", file=sys.stderr)
        return 1

    parts = {
        "scheme": parsed.scheme,
        "username": parsed.username,
        "password": parsed.password if args.show_secrets else mask_value(parsed.password),
        "host": parsed.host,
        "database": parsed.database,
        "query_parameters": dict(parsed.query_parameters),
    }
    if args.json:
        print(json.dumps(parts, indent=2))
    else:
        print(f"Split on {args.split} '@':")
        for key, value in parts.items():
            print(f"  {key}: {value}")
    return 0


def cmd_variants(uri: str, settings: Settings, args) -> int:
    variants = list_variants(uri, settings.alternate_hosts)
    if args.json:
        print(json.dumps(
            [{"label": v.label, "candidate": _display(v.candidate, args.show_secrets)} for v in variants],
            indent=2
        ))
    else:
        for index, variant in enumerate(variants, 1):
            print(f"{index:2d}. {variant.label}")
            print(f"    {_display(variant.candidate, args.show_secrets)}")
    return 0


def cmd_probe(uri: str, settings: Settings, args) -> int:
    prober = ConnectionProber(
        timeout_ms=args.timeout_ms or settings.probe_timeout_ms,
        operation=args.operation or settings.probe_operation,
    )
    if args.all_variants:
        results = probe_variants(generate_variants(uri, settings.alternate_hosts), prober)
    else:
        results = [prober.probe(uri, label="configured")]

    if args.json:
        print(to_json(results))
    else:
        print(format_probe_results(results))
    return 0 if any(r.success for r in results) else 1


def cmd_env(settings: Settings, args) -> int:
    print("Configuration variables:")
    for name in CONFIG_VARIABLES:
        value = os.getenv(name)
        if not value:
            print(f"  ✗ {name} is not set")
        elif name == "MONGO_URI":
            print(f"  ✓ {name}={_display(value, args.show_secrets)}")
        elif is_sensitive(name) and not args.show_secrets:
            print(f"  ✓ {name}={mask_value(value)}")
        else:
            print(f"  ✓ {name}={value}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="mongo-uri-doctor - MongoDB connection string diagnostics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m mongo_uri_doctor.cli analyze                 Check MONGO_URI from .env
  python -m mongo_uri_doctor.cli analyze --uri "..."     Check a literal string
  python -m mongo_uri_doctor.cli probe --all-variants    Try every variant
        """
    )
    parser.add_argument(
        "command",
        choices=["analyze", "parts", "variants", "probe", "env"],
        help="Command to run"
    )
    parser.add_argument("--uri", help="Connection string (defaults to MONGO_URI)")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    parser.add_argument("--show-secrets", action="store_true", help="Do not mask passwords")
    parser.add_argument(
        "--split",
        choices=["first", "last"],
        default="last",
        help="Which '@' separates credentials from host (parts only)"
    )
    parser.add_argument("--all-variants", action="store_true", help="Probe every variant (probe only)")
    parser.add_argument("--timeout-ms", type=int, help="Probe timeout in milliseconds")
    parser.add_argument("--operation", choices=PROBE_OPERATIONS, help="Operation run by each probe")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"✗ Invalid configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(settings.log_level)
    args.show_secrets = args.show_secrets or settings.show_secrets

    if args.command == "env":
        return cmd_env(settings, args)

    try:
        uri = args.uri if args.uri is not None else settings.require_uri()
    except MissingConnectionString as e:
        print(f"✗ {e}. Set it in your .env file or pass --uri.", file=sys.stderr)
        return 1
    if not uri:
        print("✗ MONGO_URI is not set. Set it in your .env file or pass --uri.", file=sys.stderr)
        return 1

    commands = {
        "analyze": cmd_analyze,
        "parts": cmd_parts,
        "variants": cmd_variants,
        "probe": cmd_probe,
    }
    return commands[args.command](uri, settings, args)


if __name__ == "__main__":
    sys.exit(main())
