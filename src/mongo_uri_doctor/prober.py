"""
Connection Prober

Opens a MongoDB client for one connection string, runs a single cheap
operation, and closes it again. Every outcome, including the driver refusing
the string outright, comes back as a ProbeResult; nothing is raised to the
caller.
"""

import time
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, Iterable, List, Optional

import certifi
from pymongo import MongoClient
from pymongo.errors import (
    ConfigurationError,
    ConnectionFailure,
    InvalidURI,
    NetworkTimeout,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from .core.config import PROBE_OPERATIONS
from .masking import mask_password
from .variations import ConnectionVariant

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 5000

# Server error codes for failed authentication (18 on mongod, 8000 on Atlas)
AUTH_ERROR_CODES = {18, 8000}


@dataclass
class ProbeResult:
    """Outcome of one connection attempt"""
    label: str
    success: bool
    error_name: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[Any] = None
    error_category: Optional[str] = None
    elapsed_ms: int = 0
    masked_uri: str = ""
    databases: List[str] = field(default_factory=list)
    collections: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def classify_error(exc: BaseException) -> str:
    """Map a driver exception onto a coarse failure category."""
    message = str(exc).lower()

    if isinstance(exc, (InvalidURI, ValueError)):
        return "malformed_uri"
    if isinstance(exc, OperationFailure) and (
        exc.code in AUTH_ERROR_CODES or "auth" in message
    ):
        return "authentication"
    if any(marker in message for marker in ("dns", "nxdomain", "resolution lifetime", "name or service not known", "getaddrinfo")):
        return "dns"
    if any(marker in message for marker in ("ssl", "tls", "certificate")):
        return "tls"
    if isinstance(exc, ConfigurationError):
        return "configuration"
    if isinstance(exc, (ServerSelectionTimeoutError, NetworkTimeout)) or "timed out" in message:
        return "timeout"
    if isinstance(exc, ConnectionFailure):
        return "network"
    return "unknown"


class ConnectionProber:
    """
    Probe connection strings with pymongo.

    Features:
    - Every probe is bounded by timeout_ms (server selection, connect and socket)
    - The client is closed on every path, including failures
    - Failures are reported, never raised
    """

    def __init__(
        self,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        operation: str = "ping",
        client_factory: Optional[Callable[..., Any]] = None,
        use_certifi: bool = True,
    ):
        """
        Initialize the prober.

        Args:
            timeout_ms: Upper bound for each probe, in milliseconds
            operation: "ping", "list_databases" or "list_collections"
            client_factory: Callable building a client, MongoClient by default
            use_certifi: Pass certifi's CA bundle to TLS (mongodb+srv) connections
        """
        if operation not in PROBE_OPERATIONS:
            raise ValueError(f"operation must be one of {PROBE_OPERATIONS}, got {operation!r}")
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        self.timeout_ms = timeout_ms
        self.operation = operation
        self.client_factory = client_factory or MongoClient
        self.use_certifi = use_certifi

    def _client_options(self, candidate: str, timeout_ms: int) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "serverSelectionTimeoutMS": timeout_ms,
            "connectTimeoutMS": timeout_ms,
            "socketTimeoutMS": timeout_ms,
        }
        if self.use_certifi and candidate.strip().startswith("mongodb+srv://"):
            options["tlsCAFile"] = certifi.where()
        return options

    def _run_operation(self, client, result: ProbeResult):
        client.admin.command("ping")
        if self.operation == "list_databases":
            result.databases = list(client.list_database_names())
        elif self.operation == "list_collections":
            database = client.get_default_database(default="test")
            result.collections = list(database.list_collection_names())

    def probe(self, candidate: str, label: str = "candidate", timeout_ms: Optional[int] = None) -> ProbeResult:
        """
        Connect, run the configured operation, and disconnect.

        Args:
            candidate: Connection string to try
            label: Name reported with the result
            timeout_ms: Override for this probe only

        Returns:
            ProbeResult with success=True, or success=False and the error fields set
        """
        timeout_ms = timeout_ms or self.timeout_ms
        masked = mask_password(candidate)
        result = ProbeResult(label=label, success=False, masked_uri=masked)

        logger.info(f"Probing [{label}] {masked} (timeout {timeout_ms}ms, operation {self.operation})")
        started = time.monotonic()
        client = None
        try:
            client = self.client_factory(candidate, **self._client_options(candidate, timeout_ms))
            self._run_operation(client, result)
            result.success = True
        except Exception as e:
            result.error_name = type(e).__name__
            result.error_message = str(e)
            result.error_code = getattr(e, "code", None)
            result.error_category = classify_error(e)
        finally:
            if client is not None:
                try:
                    client.close()
                except Exception as e:
                    logger.warning(f"Failed to close client for [{label}]: {e}")
            result.elapsed_ms = int((time.monotonic() - started) * 1000)

        if result.success:
            logger.info(f"✓ [{label}] connected in {result.elapsed_ms}ms")
        else:
            logger.warning(
                f"✗ [{label}] {result.error_category}: {result.error_name}: {result.error_message}"
            )
        return result


def probe_variants(variants: Iterable[ConnectionVariant], prober: ConnectionProber) -> List[ProbeResult]:
    """Probe each variant in order, one at a time."""
    results = []
    for variant in variants:
        results.append(prober.probe(variant.candidate, label=variant.label))
    succeeded = sum(1 for r in results if r.success)
    logger.info(f"Probed {len(results)} variant(s), {succeeded} succeeded")
    return results
