"""Promptcraft - LLM prompt enhancement with template resolution and prompt lineage."""

__version__ = "0.1.0"

from promptcraft.core.config import PromptcraftConfig, config
from promptcraft.core.providers import BaseProvider, ProviderName, provider_registry
from promptcraft.core.service import PromptcraftService

__all__ = [
    "BaseProvider",
    "ProviderName",
    "provider_registry",
    "PromptcraftConfig",
    "PromptcraftService",
    "config",
]
