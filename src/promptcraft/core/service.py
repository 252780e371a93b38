"""Application service: one object exposing every public operation.

:class:`PromptcraftService` wires the template registry, resolver,
orchestrator, lineage store and preset store together.  The REST API holds a
single instance on ``app.state``; scripts and tests can build their own with
in-memory backends.

Usage Example
-------------
    from promptcraft.core.config import config
    from promptcraft.core.service import PromptcraftService

    service = PromptcraftService.from_config(config)
    await service.startup()
    outcome = await service.enhance("a cat on a windowsill", "standard")
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import PromptcraftConfig
from .document_store import DocumentStore, InMemoryDocumentStore, JsonDocumentStore
from .errors import PersistenceError
from .instructions import apply_format_template
from .lineage import InMemoryLineagePersistence, JsonLineagePersistence, LineagePersistence, PromptLineageStore
from .models import Preset, PromptEntry, Template, validate_facet_snapshot
from .orchestrator import EnhancementFailure, EnhancementOrchestrator, EnhancementResult
from .presets import PresetStore
from .providers import ProviderRegistry, provider_registry
from .resolver import ResolvedTemplate, TemplateResolver
from .templates import TemplateRegistry

logger = logging.getLogger(__name__)


class PromptcraftService:
    """Facade over the enhancement core.

    Args:
        config: Application configuration
        document_store: Template document store (in memory if omitted)
        lineage_persistence: Lineage backend (in memory if omitted)
        presets: Preset store (in memory if omitted)
        providers: Provider registry
        http_client: Optional shared httpx client for provider calls
    """

    def __init__(
        self,
        config: PromptcraftConfig,
        document_store: DocumentStore | None = None,
        lineage_persistence: LineagePersistence | None = None,
        presets: PresetStore | None = None,
        providers: ProviderRegistry = provider_registry,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.registry = TemplateRegistry()
        self.document_store = document_store or InMemoryDocumentStore()
        self.resolver = TemplateResolver(self.registry, self.document_store, config, providers)
        self.lineage = PromptLineageStore(lineage_persistence or InMemoryLineagePersistence())
        self.presets = presets or PresetStore()
        self.orchestrator = EnhancementOrchestrator(
            self.resolver,
            self.lineage,
            config,
            providers=providers,
            http_client=http_client,
        )

    @classmethod
    def from_config(cls, config: PromptcraftConfig, **kwargs) -> PromptcraftService:
        """Build a service backed by the JSON files under ``config.data_dir``."""
        return cls(
            config,
            document_store=JsonDocumentStore(config.templates_path),
            lineage_persistence=JsonLineagePersistence(config.history_path, config.legacy_history_path),
            presets=PresetStore(config.presets_path),
            **kwargs,
        )

    async def startup(self) -> int:
        """Load history and run the legacy migration.

        Returns:
            Number of entries created by the migration
        """
        await self.lineage.load()
        migrated = await self.lineage.migrate_legacy()
        if migrated:
            logger.info(f"Migrated {migrated} legacy history entries")
        return migrated

    # Templates

    def list_templates(self) -> list[Template]:
        return self.registry.list_templates()

    async def resolve_template(self, template_id: str, override: str | None = None) -> ResolvedTemplate:
        return await self.resolver.resolve(template_id, override)

    async def save_template(self, template_id: str, **fields: Any) -> tuple[Template, PersistenceError | None]:
        return await self.resolver.save_template(template_id, **fields)

    async def reset_template(self, template_id: str) -> tuple[Template, PersistenceError | None]:
        return await self.resolver.reset_template(template_id)

    async def format_prompt(
        self,
        template_id: str,
        prompt: str,
        facets: dict[str, Any] | None = None,
    ) -> str:
        """Render a draft through the resolved template's format string.

        Raises:
            ValueError: If ``facets`` is not a valid facet snapshot
        """
        facets = validate_facet_snapshot(facets)
        resolved = await self.resolver.resolve(template_id)
        return apply_format_template(resolved.format_template, prompt, facets)

    # Enhancement

    async def enhance(self, prompt: str, template_id: str, **kwargs: Any) -> EnhancementResult | EnhancementFailure:
        return await self.orchestrator.enhance(prompt, template_id, **kwargs)

    async def enhance_many(
        self, prompt: str, template_ids: list[str], **kwargs: Any
    ) -> list[EnhancementResult | EnhancementFailure]:
        return await self.orchestrator.enhance_many(prompt, template_ids, **kwargs)

    def busy_state(self) -> dict[str, bool]:
        return self.orchestrator.busy.snapshot()

    # History

    async def record_original(
        self,
        prompt: str,
        options: dict[str, Any] | None = None,
        template_used: str = "standard",
    ) -> PromptEntry:
        return await self.lineage.add_original(prompt, options, template_used)

    async def record_enhanced(self, parent_id: str, enhanced_prompt: str, template_used: str) -> list[PromptEntry]:
        return await self.lineage.add_enhanced(parent_id, enhanced_prompt, template_used)

    def list_history(self) -> list[PromptEntry]:
        return self.lineage.get_all()

    async def clear_history(self) -> None:
        await self.lineage.clear_all()

    async def toggle_selection(self, entry_id: str, explicit: bool | None = None) -> list[PromptEntry]:
        return await self.lineage.toggle_selection(entry_id, explicit)

    async def migrate_legacy_history(self) -> int:
        return await self.lineage.migrate_legacy()

    # Presets

    def save_preset(
        self,
        name: str,
        description: str | None = None,
        options: dict[str, Any] | None = None,
        favorite: bool = False,
        preset_id: str | None = None,
    ) -> Preset:
        return self.presets.save(name, description, options, favorite=favorite, preset_id=preset_id)

    def export_presets(self) -> dict[str, Any]:
        return self.presets.export_all()

    def import_presets(self, document: Any) -> bool:
        return self.presets.import_all(document)
