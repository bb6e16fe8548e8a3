"""
Rendering of diagnostic reports and probe results as text or JSON.
"""
import json
from typing import Any, Dict, Iterable, List, Mapping

from .masking import DEFAULT_MASK
from .prober import ProbeResult

RULE = "=" * 60

# Section title -> report keys, in display order
SECTIONS = (
    ("Structure", ("length", "trimmed_length", "has_extra_spaces", "control_characters",
                   "at_symbol_count", "at_symbol_position")),
    ("Protocol", ("protocol", "expected_protocol", "is_valid_protocol", "is_srv")),
    ("Hostname", ("hostname", "host_count", "contains_port", "colon_count", "contains_percent",
                  "encoded_characters", "contains_encoded_colon", "has_valid_domain")),
    ("Credentials", ("has_credentials", "username", "username_length", "password_length",
                     "password_has_encoded_at", "password_encoded_at_position", "password_has_spaces",
                     "password_unencoded_reserved")),
    ("Database", ("database", "has_database", "has_query_params", "query_parameters",
                  "query_parameter_mismatches")),
)


def redact_report(report: Mapping[str, Any], show_secrets: bool = False) -> Dict[str, Any]:
    """Copy of the report safe to print; credentials never appear in it verbatim."""
    safe = dict(report)
    if not show_secrets and safe.get("username"):
        safe["username"] = DEFAULT_MASK
    return safe


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "✅" if value else "❌"
    if isinstance(value, (list, dict)):
        return json.dumps(value) if value else "(none)"
    if value == "":
        return "(empty)"
    return str(value)


def format_report(report: Mapping[str, Any], title: str = "MongoDB URI Analysis") -> str:
    """Render a diagnostic report as a block of text."""
    lines: List[str] = [RULE, title, RULE]

    if report.get("parse_error"):
        lines.append(f"Parse error: {report['parse_error']}")

    for index, (section, keys) in enumerate(SECTIONS, 1):
        lines.append("")
        lines.append(f"{index}. {section}:")
        for key in keys:
            if key in report:
                lines.append(f"   {key}: {_format_value(report[key])}")

    lines.append("")
    warnings = report.get("warnings") or []
    if warnings:
        lines.append(f"⚠ {len(warnings)} warning(s):")
        lines.extend(f"   - {warning}" for warning in warnings)
    else:
        lines.append("✓ No structural problems found")
    return "\n".join(lines)


def format_probe_results(results: Iterable[ProbeResult]) -> str:
    """Render probe results, one block per variant, plus a summary."""
    results = list(results)
    lines: List[str] = [RULE, "Connection Probes", RULE]
    for result in results:
        lines.append("")
        lines.append(f"[{result.label}] {result.masked_uri}")
        if result.success:
            lines.append(f"   ✅ Connection successful ({result.elapsed_ms}ms)")
            if result.databases:
                lines.append(f"   Databases: {', '.join(result.databases)}")
            if result.collections:
                lines.append(f"   Collections: {', '.join(result.collections)}")
        else:
            lines.append(f"   ❌ Connection failed ({result.elapsed_ms}ms)")
            lines.append(f"   category: {result.error_category}")
            lines.append(f"   name: {result.error_name}")
            lines.append(f"   message: {result.error_message}")
            lines.append(f"   code: {result.error_code}")

    succeeded = [r.label for r in results if r.success]
    lines.append("")
    lines.append(RULE)
    lines.append(f"{len(succeeded)} of {len(results)} probe(s) succeeded")
    if succeeded:
        lines.append(f"Working: {', '.join(succeeded)}")
    return "\n".join(lines)


def to_json(data: Any) -> str:
    if isinstance(data, ProbeResult):
        data = data.to_dict()
    elif isinstance(data, list):
        data = [item.to_dict() if isinstance(item, ProbeResult) else item for item in data]
    return json.dumps(data, indent=2, default=str)
