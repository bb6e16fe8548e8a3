"""
Connection String Parser

Splits a MongoDB connection string of the form

    scheme://[user:password@]host[/database][?query]

into its semantic parts. The parser does not decode
or validate percent-encoding (that is the analyzer's job), so the parts it
returns are exactly the substrings found in the input.

Credentials are separated from the host on the LAST '@' by default. The old
debugging scripts split on the first '@', which misplaces the host when a raw
'@' sits inside the password; at_split="first" keeps that behaviour available
so the two can be compared.
"""

import logging
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from .errors import MalformedURI

logger = logging.getLogger(__name__)

SCHEME_SEPARATOR = "://"
AT_SPLIT_MODES = ("first", "last")


@dataclass(frozen=True)
class ParsedConnectionString:
    """Read-only view of a parsed connection string"""
    scheme: str
    username: str = ""
    password: str = ""
    host: str = ""
    database: str = ""
    query_items: Tuple[Tuple[str, str], ...] = ()  # parsed query pairs, in order
    has_credentials: bool = False  # an '@' separated credentials from host
    has_password: bool = False  # a ':' separated username from password
    has_path: bool = False  # a '/' followed the host
    query_string: Optional[str] = None  # raw text after '?', None when absent

    @property
    def query_parameters(self) -> Mapping[str, str]:
        """Read-only mapping of query parameters"""
        return MappingProxyType(dict(self.query_items))

    @property
    def hosts(self) -> Tuple[str, ...]:
        """Individual hosts of a seed list ("h1:27017,h2:27017")"""
        return tuple(self.host.split(",")) if self.host else ()

    @property
    def is_srv(self) -> bool:
        return self.scheme.endswith("+srv")

    @property
    def credentials(self) -> str:
        if not self.has_credentials:
            return ""
        if self.password or self.has_password:
            return f"{self.username}:{self.password}"
        return self.username

    def to_uri(self) -> str:
        """Reassemble the parts with the same grammar they were parsed with."""
        uri = f"{self.scheme}{SCHEME_SEPARATOR}"
        if self.has_credentials:
            uri += f"{self.credentials}@"
        uri += self.host
        if self.has_path:
            uri += f"/{self.database}"
        if self.query_string is not None:
            uri += f"?{self.query_string}"
        return uri

    def with_changes(self, **changes) -> "ParsedConnectionString":
        """Copy with some parts replaced; the original is left untouched."""
        return replace(self, **changes)


@dataclass(frozen=True)
class ParseResult:
    """Either a parsed connection string or the reason parsing failed"""
    value: Optional[ParsedConnectionString] = None
    error: Optional[MalformedURI] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None


def parse_query_string(query_string: Optional[str]) -> Dict[str, str]:
    """
    Split 'k=v&k2=v2' into a dict.

    Keys keep their first-seen position; a repeated key keeps its last value.
    A pair without '=' maps to an empty string.
    """
    params: Dict[str, str] = {}
    if not query_string:
        return params
    for pair in query_string.split("&"):
        if not pair:
            continue
        key, _, value = pair.partition("=")
        params[key] = value
    return params


def parse_connection_string(raw: str, at_split: str = "last") -> ParsedConnectionString:
    """
    Parse a connection string into its parts.

    Args:
        raw: The connection string, exactly as configured
        at_split: Which '@' separates credentials from host ("last" or "first")

    Returns:
        ParsedConnectionString

    Raises:
        MalformedURI: If the string has no '://' separator
        ValueError: If at_split is not "first" or "last"
    """
    if at_split not in AT_SPLIT_MODES:
        raise ValueError(f"at_split must be one of {AT_SPLIT_MODES}, got {at_split!r}")

    if raw is None or SCHEME_SEPARATOR not in raw:
        raise MalformedURI(raw or "")

    scheme, remainder = raw.split(SCHEME_SEPARATOR, 1)

    at_index = remainder.rfind("@") if at_split == "last" else remainder.find("@")
    if at_index >= 0:
        credentials = remainder[:at_index]
        host_and_path = remainder[at_index + 1:]
        has_credentials = True
    else:
        credentials = ""
        host_and_path = remainder
        has_credentials = False

    username, colon, password = credentials.partition(":")

    host, slash, db_and_query = host_and_path.partition("/")
    has_path = bool(slash)
    if not has_path and "?" in host:
        # "host?opts" without a slash; the driver rejects it, but keep the parts apart
        host, _, query_string = host.partition("?")
        database = ""
    elif "?" in db_and_query:
        database, _, query_string = db_and_query.partition("?")
    else:
        database, query_string = db_and_query, None

    parsed = ParsedConnectionString(
        scheme=scheme,
        username=username,
        password=password,
        host=host,
        database=database,
        query_items=tuple(parse_query_string(query_string).items()),
        has_credentials=has_credentials,
        has_password=bool(colon),
        has_path=has_path,
        query_string=query_string,
    )
    logger.debug(f"Parsed connection string: scheme={scheme} host={host} database={database or '(none)'}")
    return parsed


def try_parse(raw: str, at_split: str = "last") -> ParseResult:
    """Parse without raising; failures come back as ParseResult.error"""
    try:
        return ParseResult(value=parse_connection_string(raw, at_split=at_split))
    except MalformedURI as e:
        return ParseResult(error=e)
