"""
Shared configuration for the CLI, the serverless handlers and the FastAPI app.

Values are read from the environment (and a .env file) once, at start-up, into
an immutable Settings object that is then passed around explicitly.
"""
import os
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

from ..errors import MissingConnectionString

load_dotenv()

PROBE_OPERATIONS = ("ping", "list_databases", "list_collections")


def _split_list(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _parse_pairs(value: Optional[str]) -> Dict[str, str]:
    """Parse 'retryWrites=true,w=majority' into a dict."""
    pairs: Dict[str, str] = {}
    for item in _split_list(value):
        key, _, val = item.partition("=")
        pairs[key.strip()] = val.strip()
    return pairs


def _parse_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be a valid integer. Configure this in your .env file.")
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer. Configure this in your .env file.")
    return value


@dataclass(frozen=True)
class Settings:
    """Centralized configuration loaded from environment variables."""

    mongo_uri: Optional[str] = None
    expected_scheme: str = "mongodb+srv"
    expected_domain_suffix: str = ".mongodb.net"
    expected_query_params: Dict[str, str] = field(default_factory=dict)
    alternate_hosts: Tuple[str, ...] = ()

    # Probing
    probe_timeout_ms: int = 5000
    probe_operation: str = "ping"
    probe_rate_limit: str = "10/minute"

    # HTTP server
    server_host: str = "127.0.0.1"
    server_port: int = 8888
    cors_origins: Tuple[str, ...] = ("http://localhost:3000",)

    # Logging / output
    log_level: str = "INFO"
    show_secrets: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from a mapping (defaults to os.environ)."""
        env = os.environ if environ is None else environ

        operation = env.get("PROBE_OPERATION", "ping").strip() or "ping"
        if operation not in PROBE_OPERATIONS:
            raise ValueError(
                f"PROBE_OPERATION must be one of {', '.join(PROBE_OPERATIONS)}. "
                "Configure this in your .env file."
            )

        return cls(
            # An empty MONGO_URI counts as unset
            mongo_uri=env.get("MONGO_URI") or None,
            expected_scheme=env.get("EXPECTED_SCHEME", "mongodb+srv"),
            expected_domain_suffix=env.get("EXPECTED_DOMAIN_SUFFIX", ".mongodb.net"),
            expected_query_params=_parse_pairs(env.get("EXPECTED_QUERY_PARAMS")),
            alternate_hosts=_split_list(env.get("ALTERNATE_HOSTS")),
            probe_timeout_ms=_parse_int(env, "PROBE_TIMEOUT_MS", 5000),
            probe_operation=operation,
            probe_rate_limit=env.get("PROBE_RATE_LIMIT", "10/minute"),
            server_host=env.get("SERVER_HOST", "127.0.0.1"),
            server_port=_parse_int(env, "SERVER_PORT", 8888),
            cors_origins=cls._allowed_origins(env.get("CORS_ORIGINS", "http://localhost:3000")),
            log_level=env.get("LOG_LEVEL", "INFO"),
            show_secrets=env.get("SHOW_SECRETS", "false").lower() == "true",
        )

    @staticmethod
    def _allowed_origins(cors_env: str) -> Tuple[str, ...]:
        """CORS allowed origins, including 127.0.0.1 variants of localhost."""
        origins = list(_split_list(cors_env))
        origins += [origin.replace("localhost", "127.0.0.1") for origin in origins if "localhost" in origin]
        return tuple(origins)

    def require_uri(self) -> str:
        """Return the configured connection string or fail the run."""
        if not self.mongo_uri:
            raise MissingConnectionString("MONGO_URI")
        return self.mongo_uri


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for this process, loaded on first use and never changed."""
    return Settings.from_env()


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure logging based on LOG_LEVEL."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # Driver and HTTP client chatter drowns the diagnostic output
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    return logging.getLogger("mongo_uri_doctor")
