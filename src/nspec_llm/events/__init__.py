"""Lifecycle event bus."""

from nspec_llm.events.bus import WILDCARD, EventBus

__all__ = ["WILDCARD", "EventBus"]
