"""Core functionality for prompt enhancement.

This module provides the core components of promptcraft:

- **TemplateRegistry**: Built-in templates and the in-memory working copy
- **TemplateResolver**: Ordered fallback from override to built-in text
- **EnhancementOrchestrator**: Provider calls, error classification, busy flags
- **PromptLineageStore**: Original/enhanced prompt history with legacy migration
- **PresetStore**: Named facet presets with validated import/export
- **PromptcraftConfig**: Configuration management using Pydantic Settings

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with PROMPTCRAFT_ in .env files

2. **Template Layer** (templates.py, resolver.py, document_store.py):
   - Built-in instruction texts per template id
   - Strategy pipeline: override, document store, memory, built-in

3. **Provider Layer** (providers.py, instructions.py):
   - Closed set of providers behind one async interface
   - Registry pattern for provider discovery

4. **History Layer** (lineage.py, presets.py):
   - JSON-backed stores that tolerate write failures

Usage Example
-------------
    from promptcraft.core import PromptcraftService, config

    service = PromptcraftService.from_config(config)
    await service.startup()
    resolved = await service.resolve_template("pipeline")
"""

from .config import PromptcraftConfig, config
from .lineage import PromptLineageStore
from .orchestrator import BusyState, EnhancementFailure, EnhancementOrchestrator, EnhancementResult
from .presets import PresetStore
from .providers import ProviderName, provider_registry
from .resolver import ResolvedTemplate, TemplateResolver
from .service import PromptcraftService
from .templates import TemplateRegistry

__all__ = [
    "BusyState",
    "EnhancementFailure",
    "EnhancementOrchestrator",
    "EnhancementResult",
    "PresetStore",
    "PromptLineageStore",
    "PromptcraftConfig",
    "PromptcraftService",
    "ProviderName",
    "ResolvedTemplate",
    "TemplateRegistry",
    "TemplateResolver",
    "config",
    "provider_registry",
]
