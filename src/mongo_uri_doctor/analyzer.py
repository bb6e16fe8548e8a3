"""
Connection String Diagnostics

Runs a fixed battery of structural checks over a connection string and returns
a plain dict of check name -> result, with a "warnings" list describing every
check that did not come out as expected.

The analysis never raises. A string that cannot even be parsed still gets the
raw-string checks; the host, database and credential checks fall back to
empty values and "parse_error" explains why.
"""

import re
import logging
from typing import Any, Dict, List, Mapping, Optional

from .uri_parser import ParsedConnectionString, try_parse

logger = logging.getLogger(__name__)

DEFAULT_EXPECTED_SCHEME = "mongodb+srv"
DEFAULT_DOMAIN_SUFFIX = ".mongodb.net"

# Characters that must be percent-encoded inside userinfo
RESERVED_CREDENTIAL_CHARS = ("@", ":", "/", "?", "#", "[", "]", " ")

_ENCODED_CHAR = re.compile(r"%[0-9A-Fa-f]{2}")
_INVALID_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _positions(text: str, char: str) -> List[int]:
    return [i for i, c in enumerate(text) if c == char]


def _control_characters(text: str) -> List[Dict[str, int]]:
    """Invisible characters that sneak in through copy/paste or env editors."""
    return [
        {"position": i, "code": ord(c)}
        for i, c in enumerate(text)
        if ord(c) < 32 or ord(c) == 127
    ]


def _structure_checks(raw: str) -> Dict[str, Any]:
    trimmed = raw.strip()
    at_positions = _positions(raw, "@")
    return {
        "length": len(raw),
        "trimmed_length": len(trimmed),
        "has_extra_spaces": trimmed != raw,
        "control_characters": _control_characters(raw),
        "at_symbol_count": len(at_positions),
        "at_symbol_position": at_positions[0] if at_positions else -1,
        "colon_positions": _positions(raw, ":"),
    }


def _protocol_checks(parsed: Optional[ParsedConnectionString], expected_scheme: str) -> Dict[str, Any]:
    protocol = parsed.scheme if parsed else ""
    return {
        "protocol": protocol,
        "expected_protocol": expected_scheme,
        "is_valid_protocol": bool(parsed) and protocol == expected_scheme,
        "is_srv": bool(parsed) and parsed.is_srv,
    }


def _host_checks(parsed: Optional[ParsedConnectionString], expected_suffix: str) -> Dict[str, Any]:
    hostname = parsed.host if parsed else ""
    hosts = [h for h in (parsed.hosts if parsed else ()) if h]
    # A port is only legal as "host:digits"; the suffix is checked on the bare host name
    bare_hosts = [h.split(":", 1)[0] for h in hosts]
    return {
        "hostname": hostname,
        "host_count": len(hosts),
        "host_parts": hostname.split(".") if hostname else [],
        "contains_port": ":" in hostname,
        "colon_count": hostname.count(":"),
        "contains_percent": "%" in hostname,
        "has_invalid_percent": bool(_INVALID_PERCENT.search(hostname)),
        "encoded_characters": _ENCODED_CHAR.findall(hostname),
        "contains_encoded_colon": "%3a" in hostname.lower(),
        "contains_encoded_at": "%40" in hostname,
        "has_valid_domain": bool(bare_hosts) and all(
            h.lower().endswith(expected_suffix.lower()) for h in bare_hosts
        ),
    }


def _database_checks(
    parsed: Optional[ParsedConnectionString],
    expected_parameters: Optional[Mapping[str, str]]
) -> Dict[str, Any]:
    database = parsed.database if parsed else ""
    params = dict(parsed.query_parameters) if parsed else {}
    mismatches = {}
    for key, expected in (expected_parameters or {}).items():
        actual = params.get(key)
        if actual != expected:
            mismatches[key] = {"expected": expected, "actual": actual}
    return {
        "database": database,
        "has_database": bool(database),
        "has_query_params": bool(params),
        "query_parameters": params,
        "query_parameter_mismatches": mismatches,
    }


def _credential_checks(parsed: Optional[ParsedConnectionString]) -> Dict[str, Any]:
    username = parsed.username if parsed else ""
    password = parsed.password if parsed else ""
    return {
        "has_credentials": bool(parsed) and parsed.has_credentials,
        "username": username,
        "username_length": len(username),
        "password_length": len(password),
        "password_has_encoded_at": "%40" in password,
        "password_encoded_at_position": password.find("%40"),
        "password_has_spaces": " " in password,
        "password_unencoded_reserved": [c for c in RESERVED_CREDENTIAL_CHARS if c in password],
        "password_has_invalid_percent": bool(_INVALID_PERCENT.search(password)),
        "username_unencoded_reserved": [c for c in RESERVED_CREDENTIAL_CHARS if c in username],
    }


def collect_warnings(report: Mapping[str, Any]) -> List[str]:
    """Human-readable flags for every check that failed its expectation."""
    warnings: List[str] = []

    if report.get("parse_error"):
        warnings.append("Connection string is missing the :// separator")
    if report.get("has_extra_spaces"):
        warnings.append("URI contains leading/trailing whitespace")
    if report.get("control_characters"):
        warnings.append(f"URI contains {len(report['control_characters'])} invisible control character(s)")
    if not report.get("parse_error") and not report.get("is_valid_protocol"):
        warnings.append(
            f"Invalid protocol: expected {report.get('expected_protocol')!r}, got {report.get('protocol')!r}"
        )

    at_count = report.get("at_symbol_count", 0)
    if at_count > 1:
        warnings.append(f"Multiple @ symbols found ({at_count}); encode '@' in the password as %40")

    if report.get("contains_port"):
        if report.get("is_srv"):
            warnings.append("Hostname contains colon: mongodb+srv connection strings must not specify a port")
        else:
            hosts = (report.get("hostname") or "").split(",")
            if any(not h.partition(":")[2].isdigit() for h in hosts if ":" in h):
                warnings.append("Hostname contains colon that is not followed by a numeric port")
    if report.get("colon_count", 0) > max(report.get("host_count", 0), 1):
        warnings.append("Hostname contains multiple colons")
    if report.get("contains_encoded_colon"):
        warnings.append("Hostname contains encoded colon")
    if report.get("contains_percent"):
        warnings.append("Hostname contains percent-encoded characters")
    if report.get("hostname") and not report.get("has_valid_domain"):
        warnings.append(f"Hostname does not end with {report.get('expected_domain_suffix')}")
    if not report.get("parse_error") and not report.get("hostname"):
        warnings.append("Hostname is empty")

    if report.get("password_has_spaces"):
        warnings.append("Password contains spaces")
    reserved = [c for c in report.get("password_unencoded_reserved", []) if c != " "]
    if reserved:
        warnings.append(f"Password contains unencoded reserved characters: {' '.join(reserved)}")
    if report.get("password_has_invalid_percent"):
        warnings.append("Password contains '%' that is not a valid escape sequence")
    if report.get("username_unencoded_reserved"):
        warnings.append("Username contains unencoded reserved characters")

    for key, mismatch in (report.get("query_parameter_mismatches") or {}).items():
        warnings.append(
            f"Query parameter {key!r} is {mismatch['actual']!r}, expected {mismatch['expected']!r}"
        )

    return warnings


def analyze_connection_string(
    raw: str,
    expected_scheme: str = DEFAULT_EXPECTED_SCHEME,
    expected_domain_suffix: str = DEFAULT_DOMAIN_SUFFIX,
    expected_parameters: Optional[Mapping[str, str]] = None,
    parsed: Optional[ParsedConnectionString] = None,
) -> Dict[str, Any]:
    """
    Build a diagnostic report for a connection string.

    Args:
        raw: The connection string exactly as configured (whitespace included)
        expected_scheme: Scheme the string should use (e.g. "mongodb+srv")
        expected_domain_suffix: Suffix every host should end with
        expected_parameters: Query parameters that must be present with these values
        parsed: Already-parsed view of raw, parsed here when omitted

    Returns:
        Dict of check name -> result, including a "warnings" list
    """
    raw = raw if isinstance(raw, str) else ""

    parse_error = None
    if parsed is None:
        # Parse the trimmed string so stray whitespace doesn't leak into the scheme
        result = try_parse(raw.strip())
        parsed = result.value
        if result.error is not None:
            parse_error = str(result.error)

    report: Dict[str, Any] = {"parse_error": parse_error}
    report.update(_structure_checks(raw))
    report.update(_protocol_checks(parsed, expected_scheme))
    report["expected_domain_suffix"] = expected_domain_suffix
    report.update(_host_checks(parsed, expected_domain_suffix))
    report.update(_database_checks(parsed, expected_parameters))
    report.update(_credential_checks(parsed))
    report["warnings"] = collect_warnings(report)

    logger.debug(f"Analysis produced {len(report['warnings'])} warning(s)")
    return report
