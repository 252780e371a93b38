"""Pydantic request models for the promptcraft API.

FastAPI uses these for request validation and OpenAPI documentation.  Facet
snapshots (``options``) are passed through untouched; the core validates
them when they are written to a store.

Models
------
EnhanceRequest
    Payload for ``POST /api/enhance-prompt``.
TemplateUpdateRequest
    Payload for ``PUT /api/templates/{id}`` - any subset of template fields.
FormatRequest
    Payload for ``POST /api/templates/{id}/format``.
OriginalEntryRequest / EnhancedEntryRequest
    Payloads for recording history entries.
SelectionRequest
    Payload for ``POST /api/history/{id}/select``.
PresetRequest
    Payload for ``POST /api/presets``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class EnhanceRequest(BaseModel):
    """Request body for the ``POST /api/enhance-prompt`` endpoint.

    Attributes:
        prompt: Draft prompt to enhance.
        template_id: Template to enhance with.  Several ids may be given in
            ``template_ids`` instead to run them concurrently.
        override: Instruction text used verbatim instead of any stored template.
        options: Facet snapshot recorded with the history entries.
        provider: Explicit provider, overriding the template's.
        model: Explicit model, overriding the template's.
        use_happy_talk: Explicit happy-talk flag.
        compress_prompt: Explicit compression flag.
        compression_level: Explicit compression level (1-10).
    """

    prompt: str = Field(default="", description="Draft prompt to enhance.")
    template_id: str = Field(default="standard", description="Template identifier.")
    template_ids: list[str] | None = Field(
        default=None,
        description="Several template ids to enhance with concurrently.",
    )
    override: str | None = Field(default=None, description="Explicit instruction text.")
    options: dict[str, Any] | None = Field(default=None, description="Facet snapshot.")
    provider: str | None = None
    model: str | None = None
    use_happy_talk: bool | None = None
    compress_prompt: bool | None = None
    compression_level: int | None = Field(default=None, ge=1, le=10)


class TemplateUpdateRequest(BaseModel):
    """Partial template update for ``PUT /api/templates/{id}``.

    Only fields that are set are merged into the template.
    """

    name: str | None = None
    master_prompt: str | None = None
    format_template: str | None = None
    usage_rules: str | None = None
    provider: str | None = None
    model: str | None = None
    use_happy_talk: bool | None = None
    compress_prompt: bool | None = None
    compression_level: int | None = Field(default=None, ge=1, le=10)


class FormatRequest(BaseModel):
    """Request body for ``POST /api/templates/{id}/format``.

    Attributes:
        prompt: Draft substituted for ``{prompt}``.
        facets: Facet values substituted for the other placeholders.
    """

    prompt: str = Field(..., min_length=1)
    facets: dict[str, Any] | None = None


class OriginalEntryRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    options: dict[str, Any] | None = None
    template_used: str = "standard"


class EnhancedEntryRequest(BaseModel):
    enhanced_prompt: str = Field(..., min_length=1)
    template_used: str = "standard"


class SelectionRequest(BaseModel):
    """Request body for ``POST /api/history/{id}/select``.

    Attributes:
        selected: Explicit state; omit to flip the current one.
    """

    selected: bool | None = None


class PresetRequest(BaseModel):
    """Request body for ``POST /api/presets``.

    Attributes:
        id: Existing preset id to replace; omit to create a new preset.
        name: Display name.
        description: Optional free text.
        options: Facet snapshot.
        favorite: Initial favorite state.
    """

    id: str | None = None
    name: str = Field(..., min_length=1)
    description: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    favorite: bool = False
