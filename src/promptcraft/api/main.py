"""Promptcraft - FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :data:`~promptcraft.core.config.config`.
- **All behaviour** lives in :class:`~promptcraft.core.service.PromptcraftService`,
  created at startup and stored on ``app.state.service``.  Routes only
  translate HTTP requests into service calls and typed failures into status
  codes.
- **Persistence** uses JSON files under ``data_dir``, no database required.

Endpoints
---------
======  ================================  ====================================
Method  Path                              Purpose
======  ================================  ====================================
GET     ``/api/templates``                List templates
GET     ``/api/templates/{id}/resolve``   Resolve effective instructions
PUT     ``/api/templates/{id}``           Save template fields
POST    ``/api/templates/{id}/reset``     Restore built-in defaults
POST    ``/api/templates/{id}/format``    Render a draft via the format string
POST    ``/api/enhance-prompt``           Enhance a draft prompt
GET     ``/api/enhance-prompt/status``    Busy flags per template group
GET     ``/api/history``                  List prompt history
POST    ``/api/history``                  Record an original prompt
POST    ``/api/history/{id}/enhanced``    Attach an enhanced prompt
POST    ``/api/history/{id}/select``      Toggle entry selection
DELETE  ``/api/history``                  Clear history
POST    ``/api/history/migrate``          Migrate the legacy history file
GET     ``/api/presets``                  List presets
POST    ``/api/presets``                  Save a preset
DELETE  ``/api/presets/{id}``             Delete a preset
POST    ``/api/presets/{id}/favorite``    Toggle favorite
GET     ``/api/presets/export``           Export all presets
POST    ``/api/presets/import``           Import presets
======  ================================  ====================================

Usage
-----
CLI (installed entry point)::

    promptcraft

Direct invocation::

    python -m promptcraft.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from promptcraft import __version__
from promptcraft.api.models import (
    EnhanceRequest,
    EnhancedEntryRequest,
    FormatRequest,
    OriginalEntryRequest,
    PresetRequest,
    SelectionRequest,
    TemplateUpdateRequest,
)
from promptcraft.core.config import config
from promptcraft.core.errors import EmptyPromptError, InvalidOptionsError, LineageIntegrityError
from promptcraft.core.orchestrator import EnhancementFailure
from promptcraft.core.service import PromptcraftService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the service on startup and load persisted history.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    service = PromptcraftService.from_config(config)
    await service.startup()
    app.state.service = service
    logger.info(f"Promptcraft service ready (data dir: {config.data_dir})")

    yield


app = FastAPI(
    title="Promptcraft",
    description="LLM prompt enhancement with template fallback and prompt lineage.",
    version=__version__,
    lifespan=lifespan,
)

# Allow cross-origin requests so a frontend can be served from a different
# port during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _service(request: Request) -> PromptcraftService:
    return request.app.state.service


def _failure_status(failure: EnhancementFailure) -> int:
    if isinstance(failure.error, (EmptyPromptError, InvalidOptionsError)):
        return 400
    return 502


# ---------------------------------------------------------------------------
# Templates.
# ---------------------------------------------------------------------------


@app.get("/api/templates")
async def list_templates(request: Request) -> dict:
    """Return every template, built-ins first."""
    templates = _service(request).list_templates()
    return {"templates": [t.to_dict() for t in templates]}


@app.get("/api/templates/{template_id}/resolve")
async def resolve_template(request: Request, template_id: str, override: str | None = None) -> dict:
    """Resolve the effective instructions for a template.

    Args:
        template_id: Template identifier (unknown ids resolve to built-in text).
        override: Optional instruction text that takes precedence.

    Returns:
        The resolved template, including ``template_source`` and any
        diagnostics errors raised during resolution.
    """
    resolved = await _service(request).resolve_template(template_id, override)
    return resolved.to_dict()


@app.put("/api/templates/{template_id}")
async def save_template(request: Request, template_id: str, req: TemplateUpdateRequest) -> dict:
    """Merge fields into a template and persist it.

    A failed write keeps the in-memory edit and is reported in
    ``persistence_error``.
    """
    fields = req.model_dump(exclude_none=True)
    template, error = await _service(request).save_template(template_id, **fields)
    return {
        "success": error is None,
        "template": template.to_dict(),
        "persistence_error": error.to_dict() if error else None,
    }


@app.post("/api/templates/{template_id}/reset")
async def reset_template(request: Request, template_id: str) -> dict:
    """Restore a template's built-in defaults, discarding saved edits."""
    template, error = await _service(request).reset_template(template_id)
    return {
        "success": error is None,
        "template": template.to_dict(),
        "persistence_error": error.to_dict() if error else None,
    }


@app.post("/api/templates/{template_id}/format")
async def format_prompt(request: Request, template_id: str, req: FormatRequest) -> dict:
    """Render a draft and facet values through the template's format string."""
    formatted = await _service(request).format_prompt(template_id, req.prompt, req.facets)
    return {"template_id": template_id, "formatted_prompt": formatted}


# ---------------------------------------------------------------------------
# Enhancement.
# ---------------------------------------------------------------------------


@app.post("/api/enhance-prompt")
async def enhance_prompt(request: Request, req: EnhanceRequest) -> dict:
    """Enhance a draft prompt with one template (or several concurrently).

    Returns:
        The enhancement result with diagnostics.  With ``template_ids``, a
        ``results`` list in the same order.

    Raises:
        HTTPException: 400 for an empty prompt or invalid options, 502 when
            the provider call failed.  The detail carries the error and
            diagnostics.
    """
    service = _service(request)
    kwargs: dict[str, Any] = {
        "override": req.override,
        "options": req.options,
        "provider": req.provider,
        "model": req.model,
        "use_happy_talk": req.use_happy_talk,
        "compress_prompt": req.compress_prompt,
        "compression_level": req.compression_level,
    }

    if req.template_ids:
        if not req.prompt.strip():
            raise HTTPException(status_code=400, detail=EmptyPromptError("Prompt is empty").to_dict())
        outcomes = await service.enhance_many(req.prompt, req.template_ids, **kwargs)
        return {"results": [outcome.to_dict() for outcome in outcomes]}

    outcome = await service.enhance(req.prompt, req.template_id, **kwargs)
    if isinstance(outcome, EnhancementFailure):
        raise HTTPException(status_code=_failure_status(outcome), detail=outcome.to_dict())
    return outcome.to_dict()


@app.get("/api/enhance-prompt/status")
async def enhancement_status(request: Request) -> dict:
    """Return busy flags per template group plus the combined flag."""
    return _service(request).busy_state()


# ---------------------------------------------------------------------------
# History.
# ---------------------------------------------------------------------------


@app.get("/api/history")
async def get_history(request: Request, selected_only: bool = False) -> dict:
    service = _service(request)
    entries = service.lineage.get_selected() if selected_only else service.list_history()
    return {"total": len(entries), "entries": [e.to_dict() for e in entries]}


@app.post("/api/history")
async def record_original(request: Request, req: OriginalEntryRequest) -> dict:
    try:
        entry = await _service(request).record_original(req.prompt, req.options, req.template_used)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return entry.to_dict()


@app.post("/api/history/{entry_id}/enhanced")
async def record_enhanced(request: Request, entry_id: str, req: EnhancedEntryRequest) -> dict:
    """Attach an enhanced prompt to an existing original entry.

    Raises:
        HTTPException: 404 if the parent does not exist or is not an original.
    """
    service = _service(request)
    before = len(service.list_history())
    entries = await service.record_enhanced(entry_id, req.enhanced_prompt, req.template_used)
    if len(entries) == before:
        error = service.lineage.last_error
        if not isinstance(error, LineageIntegrityError):
            error = LineageIntegrityError(f"Parent entry {entry_id} not found")
        raise HTTPException(status_code=404, detail=error.to_dict())
    return {"entry": entries[0].to_dict(), "total": len(entries)}


@app.post("/api/history/{entry_id}/select")
async def toggle_selection(request: Request, entry_id: str, req: SelectionRequest | None = None) -> dict:
    service = _service(request)
    if service.lineage.get(entry_id) is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    await service.toggle_selection(entry_id, req.selected if req else None)
    return service.lineage.get(entry_id).to_dict()


@app.delete("/api/history")
async def clear_history(request: Request) -> dict:
    await _service(request).clear_history()
    return {"success": True}


@app.post("/api/history/migrate")
async def migrate_history(request: Request) -> dict:
    migrated = await _service(request).migrate_legacy_history()
    return {"migrated": migrated}


# ---------------------------------------------------------------------------
# Presets.
# ---------------------------------------------------------------------------


@app.get("/api/presets")
async def list_presets(request: Request, favorites_only: bool = False) -> dict:
    presets = _service(request).presets.list(favorites_only=favorites_only)
    return {"presets": [p.to_dict() for p in presets]}


@app.post("/api/presets")
async def save_preset(request: Request, req: PresetRequest) -> dict:
    try:
        preset = _service(request).save_preset(
            req.name,
            req.description,
            req.options,
            favorite=req.favorite,
            preset_id=req.id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return preset.to_dict()


@app.get("/api/presets/export")
async def export_presets(request: Request) -> dict:
    return _service(request).export_presets()


@app.post("/api/presets/import")
async def import_presets(request: Request, document: Any = Body(...)) -> dict:
    """Import an exported preset document.

    Raises:
        HTTPException: 400 if the document is malformed; nothing is merged.
    """
    service = _service(request)
    if not service.import_presets(document):
        raise HTTPException(status_code=400, detail=service.presets.last_error.to_dict())
    return {"success": True, "total": len(service.presets.list())}


@app.delete("/api/presets/{preset_id}")
async def delete_preset(request: Request, preset_id: str) -> dict:
    if not _service(request).presets.delete(preset_id):
        raise HTTPException(status_code=404, detail="Preset not found")
    return {"success": True, "deleted": preset_id}


@app.post("/api/presets/{preset_id}/favorite")
async def toggle_favorite(request: Request, preset_id: str) -> dict:
    service = _service(request)
    if service.presets.get(preset_id) is None:
        raise HTTPException(status_code=404, detail="Preset not found")
    favorite = service.presets.toggle_favorite(preset_id)
    return {"success": True, "id": preset_id, "favorite": favorite}


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Configure logging and launch the uvicorn ASGI server.

    Host, port and log level come from :data:`~promptcraft.core.config.config`
    (``PROMPTCRAFT_SERVER_HOST``, ``PROMPTCRAFT_SERVER_PORT``,
    ``PROMPTCRAFT_LOG_LEVEL``).

    This function is registered as the ``promptcraft`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "promptcraft.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
