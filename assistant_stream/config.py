"""Config loading, interpolation, deep merge and redaction for the assistant client.

Provides:
- Layered config: defaults ← YAML file ← explicit overrides
- {env:VAR} secret interpolation with allowlist enforcement
- Redaction for safe logging (never leak the API key)

The YAML file is optional. Its path comes from the caller or from
ADPULSE_ASSISTANT_CONFIG. Only the `assistant:` section is read.
"""

from __future__ import annotations

import copy
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger("assistant_stream.config")

CONFIG_ENV_VAR = "ADPULSE_ASSISTANT_CONFIG"

# Redaction sentinel
REDACTED = "***REDACTED***"

_ENV_PATTERNS = [
    re.compile(r"^ADPULSE_"),
    re.compile(r"^SUPABASE_"),
]

_INTERP_RE = re.compile(r"\{env:([^}]+)\}")

_SENSITIVE_KEY_RE = re.compile(
    r"(auth|key|secret|token|password|credential|bearer)",
    re.IGNORECASE,
)

DEFAULT_FALLBACK_TEXT = "Sorry, no response could be generated. Please try again."
DEFAULT_ERROR_TEXT = (
    "Sorry, an error occurred while processing your request. Please try again."
)

DEFAULTS: Dict[str, Any] = {
    "base_url": "{env:SUPABASE_URL}",
    "function_path": "/functions/v1/ai-traffic-assistant",
    "api_key": "{env:SUPABASE_PUBLISHABLE_KEY}",
    "timeouts": {
        "connect_ms": 5000,
        "read_ms": 120000,
        "write_ms": 30000,
        "pool_ms": 300000,
    },
    "messages": {
        "fallback": DEFAULT_FALLBACK_TEXT,
        "error": DEFAULT_ERROR_TEXT,
    },
}


@dataclass(frozen=True)
class AssistantConfig:
    base_url: str
    api_key: str
    function_path: str = "/functions/v1/ai-traffic-assistant"
    connect_timeout_ms: int = 5000
    read_timeout_ms: int = 120000
    write_timeout_ms: int = 30000
    pool_timeout_ms: int = 300000
    fallback_text: str = DEFAULT_FALLBACK_TEXT
    error_text: str = DEFAULT_ERROR_TEXT

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.function_path.lstrip('/')}"


# ── Interpolation ─────────────────────────────────────────────────────


def interpolate_value(value: str) -> str:
    """Resolve {env:VAR_NAME} tokens in a string value."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if not any(p.search(var_name) for p in _ENV_PATTERNS):
            raise ValueError(
                f"Environment variable '{var_name}' is not in the allowlist. "
                f"Allowed: ^ADPULSE_.*, ^SUPABASE_.*"
            )
        val = os.environ.get(var_name)
        if val is None:
            raise ValueError(f"Environment variable '{var_name}' is not set")
        return val

    return _INTERP_RE.sub(_replace, value)


def interpolate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively interpolate all string values. Returns a new dict."""
    result = {}
    for key, value in config.items():
        if isinstance(value, str) and _INTERP_RE.search(value):
            result[key] = interpolate_value(value)
        elif isinstance(value, dict):
            result[key] = interpolate_config(value)
        else:
            result[key] = value
    return result


# ── Deep merge ────────────────────────────────────────────────────────


def deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base. Overlay values win.

    Returns a new dict (base and overlay are not modified).
    """
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


# ── Redaction ─────────────────────────────────────────────────────────


def redact_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Create a redacted copy of config for display/logging."""
    result = {}
    for key, value in config.items():
        if isinstance(value, dict):
            result[key] = redact_config(value)
        elif isinstance(value, str) and _INTERP_RE.search(value):
            sources = ", ".join(f"env:{ref}" for ref in _INTERP_RE.findall(value))
            result[key] = f"{REDACTED} (from {sources})"
        elif _SENSITIVE_KEY_RE.search(key):
            result[key] = REDACTED
        else:
            result[key] = value
    return result


def redact_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of headers with sensitive values redacted."""
    return {
        key: REDACTED if _SENSITIVE_KEY_RE.search(key) else value
        for key, value in headers.items()
    }


# ── Loading ───────────────────────────────────────────────────────────


def read_config_file(path: Optional[str] = None) -> Dict[str, Any]:
    """Read the `assistant:` section of a YAML config file.

    Returns {} when no file is configured. A configured but missing or
    malformed file raises ValueError.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return {}

    config_path = Path(path).expanduser()
    if not config_path.is_file():
        raise ValueError(f"Config not found: {config_path}")

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} is not a mapping")
    section = data.get("assistant", {})
    if not isinstance(section, dict):
        raise ValueError(f"'assistant' section in {config_path} is not a mapping")
    return section


def validate_config(raw: Dict[str, Any]) -> List[str]:
    """Validate a merged (uninterpolated) config dict.

    Returns list of error strings (empty = valid).
    """
    errors = []
    if not raw.get("base_url"):
        errors.append("'base_url' is required")
    if not raw.get("api_key"):
        errors.append("'api_key' is required")
    if not str(raw.get("function_path", "")).startswith("/"):
        errors.append("'function_path' must start with '/'")

    timeouts = raw.get("timeouts", {})
    if not isinstance(timeouts, dict):
        errors.append("'timeouts' must be a mapping")
    else:
        for name, value in timeouts.items():
            if not isinstance(value, int) or value <= 0:
                errors.append(f"'timeouts.{name}' must be a positive integer (ms)")
    return errors


def load_config(
    path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> AssistantConfig:
    """Build an AssistantConfig from defaults, the YAML file and overrides."""
    raw = deep_merge(DEFAULTS, read_config_file(path))
    if overrides:
        raw = deep_merge(raw, overrides)

    errors = validate_config(raw)
    if errors:
        raise ValueError("Invalid assistant config: " + "; ".join(errors))

    logger.debug("Assistant config: %s", redact_config(raw))
    resolved = interpolate_config(raw)

    timeouts = resolved["timeouts"]
    messages = resolved.get("messages", {})
    return AssistantConfig(
        base_url=resolved["base_url"],
        api_key=resolved["api_key"],
        function_path=resolved["function_path"],
        connect_timeout_ms=timeouts.get("connect_ms", 5000),
        read_timeout_ms=timeouts.get("read_ms", 120000),
        write_timeout_ms=timeouts.get("write_ms", 30000),
        pool_timeout_ms=timeouts.get("pool_ms", 300000),
        fallback_text=messages.get("fallback", DEFAULT_FALLBACK_TEXT),
        error_text=messages.get("error", DEFAULT_ERROR_TEXT),
    )
