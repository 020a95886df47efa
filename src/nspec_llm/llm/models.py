"""Model enumeration across the host and the configured direct backend."""

from __future__ import annotations

import asyncio
import logging

from nspec_llm.config import Settings
from nspec_llm.types import BackendKind, ModelDescriptor

from .backends import HostModel, HostModelProvider
from .resolver import resolve_provider

_logger = logging.getLogger(__name__)


async def list_host_models(
    host: HostModelProvider | None,
    timeout: float | None = None,
) -> list[ModelDescriptor]:
    """Describe every host model. Failures and timeouts mean "none"."""
    if host is None:
        return []
    try:
        models = await asyncio.wait_for(host.select_models(), timeout)
        return [_describe(m) for m in models or []]
    except Exception as e:
        _logger.warning("Host model enumeration failed: %s", str(e) or type(e).__name__)
        return []


def _describe(model: HostModel) -> ModelDescriptor:
    name = getattr(model, "name", None) or f"{model.vendor}/{model.family}"
    return ModelDescriptor(
        id=model.id,
        vendor=model.vendor,
        family=model.family,
        name=name,
        backend=BackendKind.HOST,
    )


def direct_model(settings: Settings) -> ModelDescriptor | None:
    """The single synthetic descriptor for the configured API key, if any."""
    config = resolve_provider(settings)
    if config is None:
        return None
    return ModelDescriptor(
        id=config.model,
        vendor=config.backend.vendor_label,
        family=config.model,
        name=f"{config.model} (API key)",
        backend=config.backend,
    )


async def list_available_models(
    host: HostModelProvider | None,
    settings: Settings,
) -> list[ModelDescriptor]:
    """Host models followed by the direct-backend descriptor.

    Never raises; the result may be empty.
    """
    models = await list_host_models(host, settings.host_enumeration_timeout)
    direct = direct_model(settings)
    if direct is not None:
        models.append(direct)
    return models
