"""
Serverless function handlers.

Each handler takes a platform event (httpMethod, path, headers, body) and a
context object and returns {"statusCode", "headers", "body"}. They hold no
logic of their own beyond calling the analyzer, the variation generator and
the prober, and they are shared by the FastAPI app in main.py.

Connection strings in response bodies are masked unless SHOW_SECRETS is set.
"""

import os
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from .analyzer import analyze_connection_string
from .core.config import Settings, get_settings
from .masking import mask_password
from .prober import ConnectionProber, probe_variants
from .report import redact_report
from .variations import generate_variants

logger = logging.getLogger(__name__)

IPIFY_URL = "https://api.ipify.org?format=json"

JSON_HEADERS = {"Content-Type": "application/json"}

Handler = Callable[..., Dict[str, Any]]


def json_response(status_code: int, body: Any, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Build a platform response with a JSON body."""
    return {
        "statusCode": status_code,
        "headers": {**JSON_HEADERS, **(headers or {})},
        "body": json.dumps(body, indent=2, default=str),
    }


def build_prober(settings: Settings, operation: Optional[str] = None) -> ConnectionProber:
    return ConnectionProber(
        timeout_ms=settings.probe_timeout_ms,
        operation=operation or settings.probe_operation,
    )


def _env_names(environ: Optional[Mapping[str, str]]) -> list:
    env = os.environ if environ is None else environ
    # Platform credentials are never listed
    return sorted(name for name in env.keys() if not name.startswith("AWS"))


def _missing_uri(environ: Optional[Mapping[str, str]]) -> Dict[str, Any]:
    logger.error("MONGO_URI is not set")
    return json_response(500, {
        "error": "MONGO_URI is not set",
        "envVars": _env_names(environ),
    })


def _display_uri(uri: str, settings: Settings) -> str:
    return uri if settings.show_secrets else mask_password(uri)


def _analyze(uri: str, settings: Settings) -> Dict[str, Any]:
    report = analyze_connection_string(
        uri,
        expected_scheme=settings.expected_scheme,
        expected_domain_suffix=settings.expected_domain_suffix,
        expected_parameters=settings.expected_query_params,
    )
    return redact_report(report, show_secrets=settings.show_secrets)


def _context_info(context: Any) -> Dict[str, Any]:
    if isinstance(context, Mapping):
        return {
            "functionName": context.get("function_name"),
            "functionVersion": context.get("function_version"),
        }
    return {
        "functionName": getattr(context, "function_name", None),
        "functionVersion": getattr(context, "function_version", None),
    }


def debug_uri(event: Dict[str, Any], context: Any, settings: Optional[Settings] = None,
              environ: Optional[Mapping[str, str]] = None, **_) -> Dict[str, Any]:
    """Full diagnostic report for the configured connection string."""
    settings = settings or get_settings()
    if not settings.mongo_uri:
        return _missing_uri(environ)
    return json_response(200, _analyze(settings.mongo_uri, settings))


def check_port(event: Dict[str, Any], context: Any, settings: Optional[Settings] = None,
               environ: Optional[Mapping[str, str]] = None, **_) -> Dict[str, Any]:
    """Look for stray ports, invisible characters and encoded bytes in the host."""
    settings = settings or get_settings()
    env = os.environ if environ is None else environ
    uri = settings.mongo_uri
    if not uri:
        return _missing_uri(environ)

    report = _analyze(uri, settings)
    query_parameters = report["query_parameters"]
    return json_response(200, {
        "availableEnvVars": _env_names(environ),
        "hasPortVar": "PORT" in env,
        "portValue": env.get("PORT"),
        "protocol": report["protocol"],
        "hostname": report["hostname"],
        "uriLength": {
            "total": report["length"],
            "trimmed": report["trimmed_length"],
            "hasExtraWhitespace": report["has_extra_spaces"],
        },
        "colons": {
            "count": len(report["colon_positions"]),
            "positions": report["colon_positions"],
            "inHostname": report["contains_port"],
            "encodedInHostname": report["contains_encoded_colon"],
        },
        "encodedCharacters": {
            "inHostname": report["encoded_characters"],
            "count": len(report["encoded_characters"]),
        },
        "invisibleCharacters": {
            "found": report["control_characters"],
            "count": len(report["control_characters"]),
        },
        "hasQueryParams": report["has_query_params"],
        "queryString": "&".join(f"{k}={v}" for k, v in query_parameters.items()) or None,
        "warnings": report["warnings"],
    })


def env_debug(event: Dict[str, Any], context: Any, settings: Optional[Settings] = None,
              environ: Optional[Mapping[str, str]] = None, **_) -> Dict[str, Any]:
    """Environment overview plus the URI analysis, without connecting."""
    settings = settings or get_settings()
    env = os.environ if environ is None else environ
    environment = {
        "availableEnvVars": _env_names(environ),
        "hasPort": "PORT" in env,
        "portValue": env.get("PORT"),
        **_context_info(context),
    }

    if not settings.mongo_uri:
        return json_response(200, {"error": "MONGO_URI is not set", "environment": environment})

    report = _analyze(settings.mongo_uri, settings)
    return json_response(200, {
        "environment": environment,
        "uri": report,
        "warnings": report["warnings"],
    })


def test_uri(event: Dict[str, Any], context: Any, settings: Optional[Settings] = None,
             environ: Optional[Mapping[str, str]] = None, prober: Optional[ConnectionProber] = None,
             **_) -> Dict[str, Any]:
    """Quick validation flags and one probe of the configured string."""
    settings = settings or get_settings()
    uri = settings.mongo_uri
    if not uri:
        return _missing_uri(environ)

    report = _analyze(uri, settings)
    validation = {
        "length": report["length"],
        "startsWithProtocol": uri.startswith(f"{settings.expected_scheme}://"),
        "hasEncodedAt": report["password_has_encoded_at"],
        "hasHost": report["has_valid_domain"],
        "hasDatabase": report["has_database"],
        "hasExtraSpaces": report["has_extra_spaces"],
    }

    prober = prober or build_prober(settings)
    result = prober.probe(uri, label="configured")
    display = _display_uri(uri, settings)
    return json_response(200, {
        "validation": validation,
        "connection": result.to_dict(),
        "uriStart": display[:20] + "...",
        "uriEnd": "..." + display[-20:],
    })


def test_mongo(event: Dict[str, Any], context: Any, settings: Optional[Settings] = None,
               environ: Optional[Mapping[str, str]] = None, prober: Optional[ConnectionProber] = None,
               **_) -> Dict[str, Any]:
    """Connect and list collections; 500 when the connection fails."""
    settings = settings or get_settings()
    uri = settings.mongo_uri
    if not uri:
        return _missing_uri(environ)

    prober = prober or build_prober(settings, operation="list_collections")
    result = prober.probe(uri, label="configured")
    if result.success:
        return json_response(200, {
            "success": True,
            "collections": result.collections,
            "message": "MongoDB connection successful",
        })
    return json_response(500, {
        "success": False,
        "error": {
            "name": result.error_name,
            "message": result.error_message,
            "code": result.error_code,
            "category": result.error_category,
        },
    })


def probe_all(event: Dict[str, Any], context: Any, settings: Optional[Settings] = None,
              environ: Optional[Mapping[str, str]] = None, prober: Optional[ConnectionProber] = None,
              **_) -> Dict[str, Any]:
    """Probe every variant of the configured string, in order."""
    settings = settings or get_settings()
    uri = settings.mongo_uri
    if not uri:
        return _missing_uri(environ)

    prober = prober or build_prober(settings)
    results = probe_variants(generate_variants(uri, settings.alternate_hosts), prober)
    return json_response(200, {
        "results": [r.to_dict() for r in results],
        "successCount": sum(1 for r in results if r.success),
        "totalTested": len(results),
        "successfulVariants": [r.label for r in results if r.success],
    })


def simple_debug(event: Dict[str, Any], context: Any, environ: Optional[Mapping[str, str]] = None,
                 **_) -> Dict[str, Any]:
    """Echo the request and function metadata."""
    return json_response(200, {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "function": _context_info(context),
        "environment": {"vars": _env_names(environ)},
        "request": {
            "method": event.get("httpMethod"),
            "path": event.get("path"),
            "headers": event.get("headers") or {},
        },
    })


def test_redirect(event: Dict[str, Any], context: Any, **_) -> Dict[str, Any]:
    return json_response(200, {
        "message": "Redirect test successful",
        "path": event.get("path"),
        "httpMethod": event.get("httpMethod"),
        "headers": event.get("headers") or {},
    })


def test_ip(event: Dict[str, Any], context: Any, **_) -> Dict[str, Any]:
    """Report the outbound IP address, for database network access lists."""
    headers = event.get("headers") or {}
    try:
        response = httpx.get(IPIFY_URL, timeout=5.0)
        response.raise_for_status()
        ip = response.json()["ip"]
    except Exception as e:
        logger.error(f"Outbound IP lookup failed: {e}")
        return json_response(500, {"error": str(e)})

    return json_response(200, {
        "ip": ip,
        "headers": headers,
        "clientIp": headers.get("client-ip"),
        "sourceIp": headers.get("x-forwarded-for"),
    })


def cors_headers(allowed_origin: str) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": allowed_origin,
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    }


def cors_preflight(event: Dict[str, Any], context: Any, allowed_origin: str = "*", **_) -> Dict[str, Any]:
    """Answer preflight requests; anything else is a 404."""
    headers = cors_headers(allowed_origin)
    if event.get("httpMethod") == "OPTIONS":
        return {"statusCode": 204, "headers": headers, "body": ""}
    return json_response(404, {"error": "Not found"}, headers)


def with_cors(handler: Handler, allowed_origin: str = "*") -> Handler:
    """
    Wrap a handler for direct deployment behind a serverless platform.

    OPTIONS requests answer 204 without calling the handler, every response
    gains the CORS headers, and an exception becomes a 500.
    """
    headers = cors_headers(allowed_origin)

    def wrapped(event: Dict[str, Any], context: Any, **kwargs) -> Dict[str, Any]:
        if event.get("httpMethod") == "OPTIONS":
            return {"statusCode": 204, "headers": headers, "body": ""}
        try:
            response = handler(event, context, **kwargs)
        except Exception as e:
            logger.error(f"Handler {handler.__name__} failed: {e}", exc_info=True)
            return json_response(500, {"error": "Internal server error"}, headers)
        return {**response, "headers": {**(response.get("headers") or {}), **headers}}

    wrapped.__name__ = handler.__name__
    wrapped.__doc__ = handler.__doc__
    return wrapped


HANDLERS: Dict[str, Handler] = {
    "debug-uri": debug_uri,
    "check-port": check_port,
    "env-debug": env_debug,
    "test-uri": test_uri,
    "test-mongo": test_mongo,
    "probe-all": probe_all,
    "simple-debug": simple_debug,
    "test-redirect": test_redirect,
    "test-ip": test_ip,
    "cors-handler": cors_preflight,
}

# Handlers that open database connections
PROBE_HANDLERS = frozenset({"test-uri", "test-mongo", "probe-all"})
