"""Settings for the nSpec LLM client.

Config discovery (first match wins):
  1. ``--config`` flag / explicit path
  2. ``./nspec.yaml``
  3. ``~/.config/nspec/config.yaml``
  4. Built-in defaults

``NSPEC_API_KEY``, ``NSPEC_API_BASE``, ``NSPEC_MODEL`` and ``NSPEC_PROVIDER``
override file values.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

_logger = logging.getLogger(__name__)

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"

API_PROVIDERS = ("auto", "openai", "anthropic")
PREFERRED_BACKENDS = ("", "host", "openai", "anthropic")


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Settings:
    """Externally owned settings. The client only ever reads these.

    ``api_base_url`` of ``None`` means "use the default for the detected
    backend".  ``preferred_*`` hold the persisted model picker choice.
    """

    api_key: str = ""
    api_base_url: str | None = None
    api_model: str = ""
    api_provider: str = "auto"  # "auto" | "openai" | "anthropic"
    preferred_model_id: str = ""
    preferred_backend: str = ""  # "" | "host" | "openai" | "anthropic"
    anthropic_version: str = "2023-06-01"
    max_tokens: int = 8192
    error_excerpt_chars: int = 200
    tool_error_excerpt_chars: int = 300
    host_enumeration_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.api_provider not in API_PROVIDERS:
            raise ValueError(
                f"api_provider must be one of {', '.join(API_PROVIDERS)}, "
                f"got {self.api_provider!r}"
            )
        if self.preferred_backend not in PREFERRED_BACKENDS:
            raise ValueError(
                f"preferred_backend must be one of {', '.join(repr(b) for b in PREFERRED_BACKENDS)}, "
                f"got {self.preferred_backend!r}"
            )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./nspec.yaml"),
    Path.home() / ".config" / "nspec" / "config.yaml",
]

_ENV_OVERRIDES = {
    "NSPEC_API_KEY": "api_key",
    "NSPEC_API_BASE": "api_base_url",
    "NSPEC_MODEL": "api_model",
    "NSPEC_PROVIDER": "api_provider",
}


def _parse_settings(raw: Mapping[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)}
    values = {k: v for k, v in raw.items() if k in known and v is not None}
    ignored = sorted(set(raw) - known)
    if ignored:
        _logger.debug("Ignoring unknown config keys: %s", ", ".join(ignored))
    if "api_key" in values:
        values["api_key"] = str(values["api_key"]).strip()
    return Settings(**values)


def apply_env(settings: Settings, environ: Mapping[str, str] | None = None) -> Settings:
    """Overlay ``NSPEC_*`` environment variables onto *settings*."""
    env = os.environ if environ is None else environ
    updates: dict[str, str] = {}
    for var, attr in _ENV_OVERRIDES.items():
        value = env.get(var, "").strip()
        if value:
            updates[attr] = value
    if not updates:
        return settings
    return replace(settings, **updates)


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from YAML, then apply environment overrides.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.
    environ:
        Environment mapping (defaults to ``os.environ``).

    Returns
    -------
    Settings
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return apply_env(Settings(), environ)
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return apply_env(Settings(), environ)

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    # Allow the settings to be nested under an ``nspec:`` key
    if isinstance(raw.get("nspec"), dict):
        raw = raw["nspec"]

    return apply_env(_parse_settings(raw), environ)
