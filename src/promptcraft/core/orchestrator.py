"""Enhancement orchestration.

Resolves a template, calls a provider, classifies failures and records the
outcome in the lineage store.  Nothing raised below this layer escapes: every
call returns either an :class:`EnhancementResult` or an
:class:`EnhancementFailure`.

Busy State
----------
Templates belong to groups ("rows", see
:func:`~promptcraft.core.templates.template_group`).  While an enhancement
runs, its group is marked busy in :class:`BusyState`, and the mark is cleared
in a ``finally`` block whatever the outcome.  Calls in the same group are
reference-counted, so one finishing does not clear the other.

Error Classification
--------------------
Provider failures arrive as free-form signals (status lines, exception
text, plus the HTTP status when there is one).  :func:`classify_provider_error`
decides on the status code first, then matches the text case-insensitively,
in this order, to :class:`AuthError`, :class:`ProviderTimeoutError`,
:class:`RateLimitError` or :class:`UnknownProviderError`.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from contextlib import contextmanager
from dataclasses import dataclass

import httpx

from .config import PromptcraftConfig
from .errors import (
    AuthError,
    EmptyPromptError,
    InvalidOptionsError,
    PromptcraftError,
    ProviderCallError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
    UnknownProviderError,
)
from .instructions import build_system_message, build_user_message, clean_response, estimate_token_count
from .lineage import PromptLineageStore
from .models import (
    EnhancementDiagnostics,
    LlmParams,
    PromptEntry,
    clamp_compression_level,
    validate_facet_snapshot,
)
from .providers import ProviderName, ProviderRegistry, ProviderRequest, provider_registry
from .resolver import TemplateResolver
from .templates import SECOND_ROW, THIRD_ROW, template_group

logger = logging.getLogger(__name__)

HANDLED_BY = "EnhancementOrchestrator"

AUTH_MARKERS = ("api key", "api_key", "unauthorized", "authentication", "forbidden", "invalid key")
TIMEOUT_MARKERS = (
    "timeout",
    "timed out",
    "econnrefused",
    "connection refused",
    "connecterror",
    "connection error",
)
RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "ratelimit", "too many requests", "quota")

# Status codes only count as whole numbers ("Used 28597" is not a 403).
AUTH_STATUS_PATTERN = re.compile(r"\b(401|403)\b")
RATE_LIMIT_STATUS_PATTERN = re.compile(r"\b429\b")

AUTH_STATUS_CODES = frozenset({401, 403})
RATE_LIMIT_STATUS_CODES = frozenset({429})
TIMEOUT_STATUS_CODES = frozenset({408, 504})


def classify_provider_error(signal: str, status_code: int | None = None) -> ProviderError:
    """Map a provider error signal to a typed provider error.

    A known HTTP ``status_code`` decides first.  Otherwise the signal text is
    matched against the auth, timeout and rate-limit markers, in that order.
    """
    if status_code in AUTH_STATUS_CODES:
        return AuthError(signal)
    if status_code in RATE_LIMIT_STATUS_CODES:
        return RateLimitError(signal)
    if status_code in TIMEOUT_STATUS_CODES:
        return ProviderTimeoutError(signal)

    text = (signal or "").lower()
    if any(marker in text for marker in AUTH_MARKERS) or AUTH_STATUS_PATTERN.search(text):
        return AuthError(signal)
    if any(marker in text for marker in TIMEOUT_MARKERS):
        return ProviderTimeoutError(signal)
    if any(marker in text for marker in RATE_LIMIT_MARKERS) or RATE_LIMIT_STATUS_PATTERN.search(text):
        return RateLimitError(signal)
    return UnknownProviderError(signal)


class BusyState:
    """Busy flags keyed by template group."""

    def __init__(self, groups: tuple[str, ...] = (SECOND_ROW, THIRD_ROW)) -> None:
        self._counts: dict[str, int] = {group: 0 for group in groups}

    def is_busy(self, group: str) -> bool:
        return self._counts.get(group, 0) > 0

    @property
    def is_enhancing(self) -> bool:
        """True while any group is busy."""
        return any(count > 0 for count in self._counts.values())

    @contextmanager
    def track(self, group: str):
        self._counts[group] = self._counts.get(group, 0) + 1
        try:
            yield
        finally:
            self._counts[group] -= 1

    def snapshot(self) -> dict[str, bool]:
        flags = {group: count > 0 for group, count in self._counts.items()}
        flags["is_enhancing"] = self.is_enhancing
        return flags


@dataclass
class EnhancementResult:
    enhanced_prompt: str
    diagnostics: EnhancementDiagnostics
    original_entry: PromptEntry | None = None
    enhanced_entry: PromptEntry | None = None

    ok = True

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "enhanced_prompt": self.enhanced_prompt,
            "diagnostics": self.diagnostics.to_dict(),
            "original_entry": self.original_entry.to_dict() if self.original_entry else None,
            "enhanced_entry": self.enhanced_entry.to_dict() if self.enhanced_entry else None,
        }


@dataclass
class EnhancementFailure:
    error: PromptcraftError
    diagnostics: EnhancementDiagnostics | None = None

    ok = False

    def to_dict(self) -> dict:
        return {
            "ok": False,
            "error": self.error.to_dict(),
            "diagnostics": self.diagnostics.to_dict() if self.diagnostics else None,
        }


class EnhancementOrchestrator:
    """Run enhancement calls end to end.

    Args:
        resolver: Template resolver
        lineage: Store that records successful enhancements
        config: Provider credentials, endpoints and sampling defaults
        providers: Provider registry
        http_client: Optional shared httpx client handed to providers
    """

    def __init__(
        self,
        resolver: TemplateResolver,
        lineage: PromptLineageStore,
        config: PromptcraftConfig,
        providers: ProviderRegistry = provider_registry,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.resolver = resolver
        self.lineage = lineage
        self.config = config
        self.providers = providers
        self.http_client = http_client
        self.busy = BusyState()

    async def enhance(
        self,
        prompt: str,
        template_id: str,
        *,
        override: str | None = None,
        options: dict | None = None,
        provider: str | None = None,
        model: str | None = None,
        use_happy_talk: bool | None = None,
        compress_prompt: bool | None = None,
        compression_level: int | None = None,
        credential: str | None = None,
    ) -> EnhancementResult | EnhancementFailure:
        """Enhance one draft prompt with one template.

        Explicit arguments take precedence over the resolved template's
        provider, model and flags.  On success the draft and its enhanced
        version are appended to the lineage store; on failure the store is
        not touched.
        """
        if not prompt or not prompt.strip():
            logger.info("Rejected enhancement of an empty prompt")
            return EnhancementFailure(EmptyPromptError("Prompt is empty"))

        try:
            options = validate_facet_snapshot(options)
        except ValueError as e:
            return EnhancementFailure(InvalidOptionsError(str(e)))

        with self.busy.track(template_group(template_id)):
            return await self._run(
                prompt,
                template_id,
                override=override,
                options=options,
                provider=provider,
                model=model,
                use_happy_talk=use_happy_talk,
                compress_prompt=compress_prompt,
                compression_level=compression_level,
                credential=credential,
            )

    async def _run(
        self,
        prompt,
        template_id,
        *,
        override,
        options,
        provider,
        model,
        use_happy_talk,
        compress_prompt,
        compression_level,
        credential,
    ) -> EnhancementResult | EnhancementFailure:
        resolved = await self.resolver.resolve(template_id, override)

        happy_talk = resolved.use_happy_talk if use_happy_talk is None else use_happy_talk
        compress = resolved.compress_prompt if compress_prompt is None else compress_prompt
        level = clamp_compression_level(
            resolved.compression_level if compression_level is None else compression_level
        )

        provider_name = resolved.provider
        model_name = model or resolved.model
        if provider:
            parsed = ProviderName.parse(provider)
            if parsed is None:
                diagnostics = self._diagnostics(resolved, provider, model_name, happy_talk, compress, level)
                error = UnknownProviderError(f"Unsupported provider '{provider}'")
                diagnostics.add_error(error.kind, error.message, HANDLED_BY)
                return EnhancementFailure(error, diagnostics)
            if parsed is not resolved.provider and not model:
                model_name = self.providers.default_model_for(parsed) or model_name
            provider_name = parsed

        diagnostics = self._diagnostics(resolved, provider_name.value, model_name, happy_talk, compress, level)
        system_message = build_system_message(resolved.instructions, resolved.usage_rules)
        user_message = build_user_message(prompt, happy_talk, compress, level)
        diagnostics.llm_params.token_count = estimate_token_count(system_message + user_message)

        request = ProviderRequest(
            system=system_message,
            user=user_message,
            model=model_name,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            credential=credential or self.config.api_key_for(provider_name.value),
        )

        started = time.perf_counter()
        try:
            adapter = self.providers.create(provider_name, self.config, client=self.http_client)
            raw = await adapter.complete(request)
            enhanced = clean_response(raw)
        except ProviderCallError as e:
            return self._failure(classify_provider_error(e.signal, e.status_code), diagnostics, template_id)
        except KeyError as e:
            return self._failure(UnknownProviderError(str(e)), diagnostics, template_id)
        except Exception as e:
            logger.exception(f"Unexpected failure calling {provider_name.value}")
            return self._failure(
                UnknownProviderError(f"Unexpected provider failure: {e!r}"), diagnostics, template_id
            )
        finally:
            diagnostics.response_time_ms = int((time.perf_counter() - started) * 1000)

        if not enhanced:
            return self._failure(
                UnknownProviderError("Provider returned an empty response"), diagnostics, template_id
            )

        original_entry = await self.lineage.add_original(prompt, options, template_id)
        await self.lineage.add_enhanced(original_entry.id, enhanced, template_id)
        children = self.lineage.get_children(original_entry.id)
        enhanced_entry = children[0] if children else None

        logger.info(
            f"Enhanced prompt with '{template_id}' via {provider_name.value}/{model_name} "
            f"in {diagnostics.response_time_ms}ms ({diagnostics.template_source.value})"
        )
        return EnhancementResult(
            enhanced_prompt=enhanced,
            diagnostics=diagnostics,
            original_entry=original_entry,
            enhanced_entry=enhanced_entry,
        )

    def _diagnostics(self, resolved, provider, model, happy_talk, compress, level) -> EnhancementDiagnostics:
        diagnostics = EnhancementDiagnostics(
            provider=provider,
            model=model,
            template_source=resolved.template_source,
            fallback_used=resolved.fallback_used,
            llm_params=LlmParams(
                use_happy_talk=happy_talk,
                compress_prompt=compress,
                compression_level=level,
                master_prompt_length=len(resolved.instructions),
            ),
        )
        diagnostics.errors.extend(resolved.errors)
        return diagnostics

    def _failure(
        self,
        error: ProviderError,
        diagnostics: EnhancementDiagnostics,
        template_id: str,
    ) -> EnhancementFailure:
        logger.warning(f"Enhancement with '{template_id}' failed ({error.kind}): {error.message}")
        diagnostics.add_error(error.kind, error.message, HANDLED_BY)
        return EnhancementFailure(error, diagnostics)

    async def enhance_many(
        self,
        prompt: str,
        template_ids: list[str],
        **kwargs,
    ) -> list[EnhancementResult | EnhancementFailure]:
        """Enhance one draft with several templates concurrently.

        Outcomes are returned in the order of ``template_ids``.
        """
        return await asyncio.gather(
            *(self.enhance(prompt, template_id, **kwargs) for template_id in template_ids)
        )
