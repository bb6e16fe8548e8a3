# Core shared modules for the CLI, the serverless handlers and the FastAPI app
from .config import Settings, get_settings, setup_logging, PROBE_OPERATIONS

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "setup_logging",
    "PROBE_OPERATIONS",
]
