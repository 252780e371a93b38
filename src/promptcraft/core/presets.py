"""Named, favoritable facet presets with validated import/export.

Presets are kept in memory and mirrored to a single JSON file (when a path
is given).  Import documents are validated in full with pydantic before
anything is merged, so a malformed document never leaves a partial import
behind.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ImportValidationError, PersistenceError
from .models import Preset, new_id, utc_now, validate_facet_snapshot

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1


class PresetDocument(BaseModel):
    """One preset as it appears in an import document."""

    model_config = ConfigDict(strict=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None
    favorite: bool = False
    options: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None

    @field_validator("options")
    @classmethod
    def options_must_be_snapshot(cls, value: dict[str, Any]) -> dict[str, Any]:
        return validate_facet_snapshot(value)


class PresetExport(BaseModel):
    """Top-level import/export document."""

    model_config = ConfigDict(strict=True)

    version: int = EXPORT_VERSION
    presets: list[PresetDocument]

    @field_validator("presets")
    @classmethod
    def ids_must_be_unique(cls, value: list[PresetDocument]) -> list[PresetDocument]:
        ids = [preset.id for preset in value]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate preset ids in import document")
        return value


class PresetStore:
    """Preset collection, optionally backed by a JSON file.

    Args:
        path: JSON file to mirror presets to; ``None`` keeps them in memory only

    Attributes:
        last_error: The most recent import or persistence failure, if any
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path) if path else None
        self.last_error: ImportValidationError | PersistenceError | None = None
        self._presets: dict[str, Preset] = {}
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            document = PresetExport.model_validate(
                data if isinstance(data, dict) else {"presets": data}
            )
        except (OSError, ValueError) as e:
            # pydantic's ValidationError is a ValueError
            logger.warning(f"Could not load presets from {self.path}: {e}")
            return
        for item in document.presets:
            self._presets[item.id] = _preset_from_document(item)
        logger.info(f"Loaded {len(self._presets)} presets")

    def _save(self) -> bool:
        if self.path is None:
            return True
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self.export_all(), f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save presets: {e}")
            self.last_error = PersistenceError(f"Could not save presets: {e}")
            return False
        return True

    def save(
        self,
        name: str,
        description: str | None = None,
        options: dict[str, Any] | None = None,
        favorite: bool = False,
        preset_id: str | None = None,
    ) -> Preset:
        """Create a preset, or replace the one with ``preset_id``.

        Raises:
            ValueError: If ``name`` is blank or ``options`` is not a valid facet snapshot
        """
        if not name or not name.strip():
            raise ValueError("Preset name must not be empty")
        existing = self._presets.get(preset_id) if preset_id else None
        preset = Preset(
            id=preset_id or new_id(),
            name=name.strip(),
            description=description,
            options=validate_facet_snapshot(options),
            favorite=favorite,
            created_at=existing.created_at if existing else utc_now(),
        )
        self._presets[preset.id] = preset
        self._save()
        logger.info(f"Saved preset '{preset.name}' ({preset.id})")
        return preset

    def get(self, preset_id: str) -> Preset | None:
        return self._presets.get(preset_id)

    def list(self, favorites_only: bool = False) -> list[Preset]:
        presets = sorted(self._presets.values(), key=lambda p: p.created_at, reverse=True)
        if favorites_only:
            return [p for p in presets if p.favorite]
        return presets

    def delete(self, preset_id: str) -> bool:
        if preset_id not in self._presets:
            return False
        del self._presets[preset_id]
        self._save()
        logger.info(f"Deleted preset {preset_id}")
        return True

    def toggle_favorite(self, preset_id: str) -> bool:
        """Flip a preset's favorite flag.

        Returns:
            The new favorite state; False when the id is unknown
        """
        preset = self._presets.get(preset_id)
        if preset is None:
            return False
        preset.favorite = not preset.favorite
        self._save()
        return preset.favorite

    def export_all(self) -> dict[str, Any]:
        return {
            "version": EXPORT_VERSION,
            "presets": [p.to_dict() for p in self.list()],
        }

    def import_all(self, document: Any) -> bool:
        """Validate and merge an exported document.

        Imported presets replace existing presets with the same id.  If any
        part of the document is invalid, nothing is merged.

        Returns:
            True if the document was merged
        """
        try:
            parsed = PresetExport.model_validate(document)
        except ValidationError as e:
            logger.warning(f"Rejected preset import: {e.error_count()} validation errors")
            self.last_error = ImportValidationError(f"Invalid preset document: {e}")
            return False

        for item in parsed.presets:
            self._presets[item.id] = _preset_from_document(item)
        self._save()
        logger.info(f"Imported {len(parsed.presets)} presets")
        return True


def _preset_from_document(item: PresetDocument) -> Preset:
    return Preset(
        id=item.id,
        name=item.name,
        description=item.description,
        favorite=item.favorite,
        options=item.options,
        created_at=item.created_at or utc_now(),
    )
