"""Run configuration: raw mapping or YAML file -> validated RequestSpec."""

from __future__ import annotations

from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml

from .exceptions import ConfigError
from .logging_config import get_logger
from .models import RequestSpec
from .randomizer import parse_rule

logger = get_logger("config")

DEFAULT_METHOD = "GET"
ALLOWED_SCHEMES = frozenset({"http", "https"})
CONFIG_FIELDS = ("url", "method", "headers", "params", "threads", "iterations", "random_param")


def _validate_url(raw_url: Any) -> str:
    if raw_url is None:
        raise ConfigError("url is required")
    if not isinstance(raw_url, str):
        raise ConfigError("url must be a string", context={"actual_type": type(raw_url).__name__})
    url = raw_url.strip()
    if not url:
        raise ConfigError("url must not be empty")
    try:
        parsed = urlparse(url)
        _ = parsed.port  # raises ValueError on a malformed port
    except ValueError as e:
        raise ConfigError(f"Invalid url: {url}", original_error=e) from e
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.hostname:
        raise ConfigError(f"Invalid url: {url}", context={"scheme": parsed.scheme})
    return url


def _count(raw: Mapping[str, Any], key: str) -> int:
    """threads / iterations: missing, null, zero or negative -> 1. No upper bound."""
    value = raw.get(key)
    if value is None:
        return 1
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer", context={key: value})
    try:
        n = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be an integer", context={key: value}, original_error=e) from e
    return n if n >= 1 else 1


def _mapping(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(
            f"{key} must be a mapping",
            context={"actual_type": type(value).__name__},
        )
    return value


def build_spec(raw: Mapping[str, Any]) -> RequestSpec:
    """Validate and normalize a raw configuration into a RequestSpec.

    Args:
        raw: Mapping with optional fields url, method, headers, params,
            threads, iterations, random_param

    Returns:
        Immutable RequestSpec shared by all workers

    Raises:
        ConfigError: If url is empty/unparsable or a field has the wrong type
    """
    if not isinstance(raw, Mapping):
        raise ConfigError("Config must be a mapping", context={"actual_type": type(raw).__name__})

    url = _validate_url(raw.get("url"))
    method = str(raw.get("method") or "").strip().upper() or DEFAULT_METHOD
    # Keys keep the caller's spelling; lookups elsewhere are case-insensitive
    # A null header value (YAML "X-Empty:") is sent empty, not as "None"
    headers = {str(k): "" if v is None else str(v) for k, v in _mapping(raw, "headers").items()}
    params = {str(k): v for k, v in _mapping(raw, "params").items()}
    rules = {str(k): parse_rule(str(v)) for k, v in _mapping(raw, "random_param").items()}

    spec = RequestSpec(
        url=url,
        method=method,
        headers=MappingProxyType(headers),
        params=MappingProxyType(params),
        rules=MappingProxyType(rules),
        threads=_count(raw, "threads"),
        iterations=_count(raw, "iterations"),
    )
    literal = [k for k, r in rules.items() if not r.is_range]
    if literal:
        logger.debug("random_param keys used as literals (not '<int>-<int>'): %s", ", ".join(literal))
    return spec


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML config file into a raw mapping (not yet validated).

    Raises:
        ConfigError: If file not found, unreadable, invalid YAML, or not a mapping
    """
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {path}", context={"path": str(path)})

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.exception("Failed to parse YAML config file")
        raise ConfigError(
            f"Invalid YAML syntax in config file: {e}",
            context={"path": str(path)},
            original_error=e,
        ) from e
    except OSError as e:
        logger.exception("Failed to read config file")
        raise ConfigError(
            f"Cannot read config file: {e}",
            context={"path": str(path)},
            original_error=e,
        ) from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(
            "Config must be a YAML object/dictionary",
            context={"path": str(path), "actual_type": type(raw).__name__},
        )
    unknown = sorted(set(raw) - set(CONFIG_FIELDS))
    if unknown:
        logger.warning("Ignoring unknown config fields: %s", ", ".join(map(str, unknown)))
    return raw


def load_config(path: str | Path) -> RequestSpec:
    """Load and validate a YAML run configuration."""
    spec = build_spec(read_config_file(path))
    logger.debug(
        "Loaded config: url=%s, method=%s, threads=%s, iterations=%s",
        spec.url, spec.method, spec.threads, spec.iterations,
    )
    return spec


def merge_config(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Apply overrides over base. None means "not given"; mapping fields merge key by key."""
    merged = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if key in ("headers", "params", "random_param"):
            current = merged.get(key) or {}
            if not isinstance(current, Mapping):
                raise ConfigError(f"{key} must be a mapping", context={"actual_type": type(current).__name__})
            merged[key] = {**current, **value}
        else:
            merged[key] = value
    return merged
