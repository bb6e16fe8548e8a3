"""
Connection String Variations

Generates structurally altered copies of a base connection string so that each
one can be probed in turn, isolating which feature of the string (encoding,
scheme, database segment, host form) makes the connection fail.

Every variant applies exactly one rule to the base. Rules that do not apply
are skipped, as is any candidate identical to one already produced, so the
sequence for a given base is always the same.
"""

import logging
from typing import Callable, Iterable, Iterator, List, NamedTuple, Optional, Tuple
from urllib.parse import quote, unquote

from .uri_parser import ParsedConnectionString, try_parse

logger = logging.getLogger(__name__)


class ConnectionVariant(NamedTuple):
    label: str
    candidate: str


def _strip_port(host: str) -> str:
    return ",".join(h.split(":", 1)[0] for h in host.split(","))


def _without_database(parsed: ParsedConnectionString) -> Optional[str]:
    if not parsed.database:
        return None
    if parsed.query_string is not None:
        # Options still need the slash in front of '?'
        return parsed.with_changes(database="").to_uri()
    return parsed.with_changes(database="", has_path=False).to_uri()


def _encoded_at(parsed: ParsedConnectionString) -> Optional[str]:
    if "@" not in parsed.credentials:
        return None
    return parsed.with_changes(
        username=parsed.username.replace("@", "%40"),
        password=parsed.password.replace("@", "%40"),
    ).to_uri()


def _decoded_at(parsed: ParsedConnectionString) -> Optional[str]:
    if "%40" not in parsed.credentials:
        return None
    return parsed.with_changes(
        username=parsed.username.replace("%40", "@"),
        password=parsed.password.replace("%40", "@"),
    ).to_uri()


def _double_encoded_password(parsed: ParsedConnectionString) -> Optional[str]:
    if not parsed.password:
        return None
    return parsed.with_changes(password=quote(parsed.password, safe="")).to_uri()


def _without_srv(parsed: ParsedConnectionString) -> Optional[str]:
    if "+" not in parsed.scheme:
        return None
    return parsed.with_changes(scheme=parsed.scheme.split("+", 1)[0]).to_uri()


def _without_port(parsed: ParsedConnectionString) -> Optional[str]:
    if ":" not in parsed.host:
        return None
    return parsed.with_changes(host=_strip_port(parsed.host)).to_uri()


def _trailing_slash(parsed: ParsedConnectionString) -> Optional[str]:
    if parsed.query_string is not None:
        # "host/?opts" and "host?opts" are not interchangeable for the driver
        return None
    if parsed.has_path and not parsed.database:
        return parsed.with_changes(has_path=False).to_uri()
    if parsed.database.endswith("/"):
        return parsed.with_changes(database=parsed.database.rstrip("/")).to_uri()
    if parsed.has_path:
        return parsed.with_changes(database=f"{parsed.database}/").to_uri()
    return parsed.with_changes(has_path=True).to_uri()


# Rules applied to the parsed base, in output order
PARSED_RULES: Tuple[Tuple[str, Callable[[ParsedConnectionString], Optional[str]]], ...] = (
    ("without_database", _without_database),
    ("encoded_at", _encoded_at),
    ("decoded_at", _decoded_at),
)

LATE_PARSED_RULES: Tuple[Tuple[str, Callable[[ParsedConnectionString], Optional[str]]], ...] = (
    ("double_encoded_password", _double_encoded_password),
    ("without_srv", _without_srv),
    ("without_port", _without_port),
)


def _candidates(base: str, alternate_hosts: Iterable[str]) -> Iterator[Tuple[str, Optional[str]]]:
    yield "original", base
    trimmed = base.strip()
    yield "trimmed", trimmed

    parsed = try_parse(trimmed).value

    if parsed is not None:
        for label, rule in PARSED_RULES:
            yield label, rule(parsed)

    yield "decoded", unquote(trimmed)

    if parsed is None:
        return

    for label, rule in LATE_PARSED_RULES:
        yield label, rule(parsed)

    for host in alternate_hosts:
        yield f"alternate_host:{host}", parsed.with_changes(host=host).to_uri()

    yield "trailing_slash", _trailing_slash(parsed)


def generate_variants(base: str, alternate_hosts: Iterable[str] = ()) -> Iterator[ConnectionVariant]:
    """
    Yield labelled variants of a base connection string.

    Calling this again with the same arguments yields the same variants in the
    same order; nothing is remembered between calls and the base is never
    modified.

    Args:
        base: The connection string to vary
        alternate_hosts: Host literals to substitute for the parsed host

    Yields:
        ConnectionVariant(label, candidate)
    """
    seen = set()
    for label, candidate in _candidates(base, tuple(alternate_hosts)):
        if candidate is None or candidate in seen:
            continue
        seen.add(candidate)
        yield ConnectionVariant(label, candidate)


def list_variants(base: str, alternate_hosts: Iterable[str] = ()) -> List[ConnectionVariant]:
    """Eager form of generate_variants"""
    return list(generate_variants(base, alternate_hosts))
