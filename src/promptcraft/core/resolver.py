"""Template resolution: always produce a usable instruction set.

Resolution is an ordered pipeline of strategies.  Each strategy looks at one
source and either returns a :class:`TierHit` or ``None``; the first hit wins:

1. :class:`OverrideStrategy` - explicit override text from the caller
2. :class:`DocumentStoreStrategy` - saved template in the document store
3. :class:`MemoryStrategy` - in-memory working copy in the registry
4. :class:`BuiltinStrategy` - fixed built-in text (always hits)

Provider, model and behaviour flags are resolved per field with the same
precedence: the winning tier's template first, then the remaining templates
in tier order, then configuration defaults.

:meth:`TemplateResolver.resolve` never raises and never returns empty
instructions.  Failures along the way (an unreachable document store, an
unknown provider name) are recorded as diagnostics errors on the result, as
is a ``template_fallback`` entry when only the built-in tier had instructions.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .config import PromptcraftConfig
from .document_store import DocumentStore
from .errors import PersistenceError, TemplateResolutionFallback
from .models import DiagnosticsError, Template, TemplateSource
from .providers import ProviderName, ProviderRegistry, provider_registry
from .templates import TemplateRegistry, builtin_template, get_builtin_instructions

logger = logging.getLogger(__name__)

HANDLED_BY = "TemplateResolver"


@dataclass
class TierHit:
    """Instructions found by one strategy, with the template they came from."""

    instructions: str
    source: TemplateSource
    template: Template | None = None


@dataclass
class ResolvedTemplate:
    """Effective instruction payload for one enhancement call."""

    template_id: str
    instructions: str
    template_source: TemplateSource
    provider: ProviderName
    model: str
    use_happy_talk: bool
    compress_prompt: bool
    compression_level: int
    usage_rules: str = ""
    format_template: str = "{prompt}"
    errors: list[DiagnosticsError] = field(default_factory=list)

    @property
    def fallback_used(self) -> bool:
        return self.template_source is TemplateSource.BUILTIN

    def to_dict(self) -> dict:
        return {
            "template_id": self.template_id,
            "instructions": self.instructions,
            "template_source": self.template_source.value,
            "provider": self.provider.value,
            "model": self.model,
            "use_happy_talk": self.use_happy_talk,
            "compress_prompt": self.compress_prompt,
            "compression_level": self.compression_level,
            "usage_rules": self.usage_rules,
            "format_template": self.format_template,
            "fallback_used": self.fallback_used,
            "errors": [
                {"type": e.type, "message": e.message, "handled_by": e.handled_by}
                for e in self.errors
            ],
        }


class ResolutionStrategy(ABC):
    """One tier of the resolution pipeline."""

    source: TemplateSource

    @abstractmethod
    async def lookup(
        self,
        template_id: str,
        override: str | None,
        errors: list[DiagnosticsError],
    ) -> TierHit | None:
        """Return a hit for this tier, or None to fall through.

        Strategies append recoverable problems to ``errors`` instead of raising.
        """


class OverrideStrategy(ResolutionStrategy):
    source = TemplateSource.OVERRIDE

    async def lookup(self, template_id, override, errors):
        if override and override.strip():
            return TierHit(instructions=override, source=self.source)
        return None


class DocumentStoreStrategy(ResolutionStrategy):
    source = TemplateSource.DATABASE

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def lookup(self, template_id, override, errors):
        try:
            document = await self.store.get(template_id)
        except Exception as e:
            logger.warning(f"Document store lookup failed for template '{template_id}': {e}")
            errors.append(
                DiagnosticsError(
                    type="database_error",
                    message=f"Template lookup failed: {e}",
                    handled_by=HANDLED_BY,
                )
            )
            return None

        if not document:
            return None
        template = Template.from_document(template_id, document)
        if not template.master_prompt.strip():
            return None
        return TierHit(instructions=template.master_prompt, source=self.source, template=template)


class MemoryStrategy(ResolutionStrategy):
    source = TemplateSource.MEMORY

    def __init__(self, registry: TemplateRegistry) -> None:
        self.registry = registry

    async def lookup(self, template_id, override, errors):
        template = self.registry.get_template(template_id)
        if template is None or not template.master_prompt.strip():
            return None
        return TierHit(instructions=template.master_prompt, source=self.source, template=template)


class BuiltinStrategy(ResolutionStrategy):
    source = TemplateSource.BUILTIN

    async def lookup(self, template_id, override, errors):
        return TierHit(
            instructions=get_builtin_instructions(template_id),
            source=self.source,
            template=builtin_template(template_id),
        )


class TemplateResolver:
    """Resolve templates through the ordered strategy pipeline.

    Args:
        registry: In-memory template registry (tier 3)
        store: Template document store (tier 2)
        config: Supplies the default provider/model pair
        providers: Provider registry used to look up per-provider default models
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        store: DocumentStore,
        config: PromptcraftConfig,
        providers: ProviderRegistry = provider_registry,
    ) -> None:
        self.registry = registry
        self.store = store
        self.config = config
        self.providers = providers
        self.strategies: list[ResolutionStrategy] = [
            OverrideStrategy(),
            DocumentStoreStrategy(store),
            MemoryStrategy(registry),
            BuiltinStrategy(),
        ]

    async def resolve(self, template_id: str, override: str | None = None) -> ResolvedTemplate:
        """Resolve the effective instructions and settings for a template id."""
        errors: list[DiagnosticsError] = []
        hit: TierHit | None = None

        for strategy in self.strategies:
            try:
                hit = await strategy.lookup(template_id, override, errors)
            except Exception as e:
                logger.error(f"{type(strategy).__name__} failed for '{template_id}': {e}")
                errors.append(
                    DiagnosticsError(type="resolution_error", message=str(e), handled_by=HANDLED_BY)
                )
                hit = None
            if hit is not None and hit.instructions.strip():
                break
            hit = None

        if hit is None:
            # Only reachable if the built-in tier itself failed
            hit = TierHit(
                instructions=get_builtin_instructions(template_id),
                source=TemplateSource.BUILTIN,
                template=builtin_template(template_id),
            )

        logger.debug(f"Template '{template_id}' resolved from {hit.source.value} tier")
        if hit.source is TemplateSource.BUILTIN:
            fallback = TemplateResolutionFallback(
                f"No saved or edited instructions for '{template_id}', using built-in text"
            )
            errors.append(
                DiagnosticsError(type=fallback.kind, message=fallback.message, handled_by=HANDLED_BY)
            )

        candidates = self._field_candidates(template_id, hit)
        primary = candidates[0]

        provider = self._resolve_provider(candidates, errors)
        model = _first_non_empty(t.model for t in candidates)
        if not model:
            if provider.value == self.config.default_provider:
                model = self.config.default_model
            else:
                model = self.providers.default_model_for(provider) or self.config.default_model

        return ResolvedTemplate(
            template_id=template_id,
            instructions=hit.instructions,
            template_source=hit.source,
            provider=provider,
            model=model,
            use_happy_talk=primary.use_happy_talk,
            compress_prompt=primary.compress_prompt,
            compression_level=primary.compression_level,
            usage_rules=primary.usage_rules,
            format_template=primary.format_template,
            errors=errors,
        )

    def _field_candidates(self, template_id: str, hit: TierHit) -> list[Template]:
        """Templates to consult for per-field settings, in precedence order."""
        candidates: list[Template] = []
        if hit.template is not None:
            candidates.append(hit.template)
        if hit.source in (TemplateSource.OVERRIDE, TemplateSource.DATABASE):
            working_copy = self.registry.get_template(template_id)
            if working_copy is not None:
                candidates.append(working_copy)
        if hit.source is not TemplateSource.BUILTIN:
            candidates.append(builtin_template(template_id))
        return candidates

    def _resolve_provider(self, candidates: list[Template], errors: list[DiagnosticsError]) -> ProviderName:
        for template in candidates:
            if not template.provider:
                continue
            parsed = ProviderName.parse(template.provider)
            if parsed is not None:
                return parsed
            logger.warning(f"Unsupported provider '{template.provider}' on template '{template.id}'")
            errors.append(
                DiagnosticsError(
                    type="invalid_provider",
                    message=f"Unsupported provider '{template.provider}', using default",
                    handled_by=HANDLED_BY,
                )
            )
            break
        return ProviderName.parse(self.config.default_provider) or ProviderName.OPENAI

    async def save_template(self, template_id: str, **fields) -> tuple[Template, PersistenceError | None]:
        """Update the working copy and write it to the document store.

        Returns:
            The updated template and, if the store write failed, the error.
            The in-memory edit is kept either way.

        Raises:
            ValueError: If a field name is not a Template field
        """
        template = self.registry.upsert_template(template_id, **fields)
        try:
            await self.store.put(template_id, template.to_dict())
        except Exception as e:
            logger.error(f"Failed to save template '{template_id}': {e}")
            return template, PersistenceError(f"Could not save template '{template_id}': {e}")
        logger.info(f"Saved template '{template_id}'")
        return template, None

    async def reset_template(self, template_id: str) -> tuple[Template, PersistenceError | None]:
        """Restore a template's built-in defaults in memory and in the store.

        The stored document is overwritten with the defaults, so a saved edit
        no longer wins resolution.  Custom slots are stored blank and resolve
        to the built-in text again.
        """
        template = self.registry.reset_template(template_id)
        try:
            await self.store.put(template_id, template.to_dict())
        except Exception as e:
            logger.error(f"Failed to reset template '{template_id}': {e}")
            return template, PersistenceError(f"Could not reset template '{template_id}': {e}")
        return template, None


def _first_non_empty(values) -> str:
    for value in values:
        if value:
            return value
    return ""
