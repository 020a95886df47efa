"""Direct-backend resolution from settings.

Pure functions of the current ``Settings``; nothing here performs I/O.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from nspec_llm.config import (
    DEFAULT_ANTHROPIC_BASE_URL,
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_MODEL,
    Settings,
)
from nspec_llm.types import BackendKind, ProviderConfig

_logger = logging.getLogger(__name__)

ANTHROPIC_KEY_PREFIX = "sk-ant"


def _url_looks_anthropic(base_url: str) -> bool:
    return "anthropic" in base_url.lower()


def _url_looks_openai(base_url: str) -> bool:
    host = urlparse(base_url).hostname or ""
    return host.endswith("openai.com") or "/chat/completions" in base_url


def detect_backend(api_key: str, base_url: str | None) -> BackendKind:
    """Guess the direct backend from the base URL and key prefix.

    An Anthropic-style key wins over an OpenAI-looking URL; the conflict is
    logged so the explicit ``api_provider`` override can be used instead.
    """
    key_says_anthropic = api_key.startswith(ANTHROPIC_KEY_PREFIX)
    if base_url and _url_looks_anthropic(base_url):
        return BackendKind.ANTHROPIC
    if key_says_anthropic:
        if base_url and _url_looks_openai(base_url):
            _logger.warning(
                "API key looks like an Anthropic key but base URL %s looks "
                "OpenAI-compatible; using Anthropic. Set api_provider to "
                "override.",
                base_url,
            )
        return BackendKind.ANTHROPIC
    return BackendKind.OPENAI


def resolve_provider(
    settings: Settings,
    preferred: BackendKind | None = None,
) -> ProviderConfig | None:
    """Return the direct-backend config, or ``None`` if no API key is set.

    Precedence for the backend kind: a pinned direct *preferred* backend,
    then an explicit ``settings.api_provider``, then auto-detection.
    """
    api_key = settings.api_key.strip()
    if not api_key:
        return None

    if preferred is not None and preferred.is_direct:
        backend = preferred
    elif settings.api_provider != "auto":
        backend = BackendKind(settings.api_provider)
    else:
        backend = detect_backend(api_key, settings.api_base_url)

    if backend is BackendKind.ANTHROPIC:
        default_url, default_model = DEFAULT_ANTHROPIC_BASE_URL, DEFAULT_ANTHROPIC_MODEL
    else:
        default_url, default_model = DEFAULT_OPENAI_BASE_URL, DEFAULT_OPENAI_MODEL

    base_url = (settings.api_base_url or default_url).rstrip("/")
    return ProviderConfig(
        api_key=api_key,
        base_url=base_url,
        model=settings.api_model or default_model,
        backend=backend,
    )
