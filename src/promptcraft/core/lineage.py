"""Prompt lineage: originals and the enhanced prompts derived from them.

The store keeps a newest-first list of :class:`PromptEntry` records and
mirrors it to a :class:`LineagePersistence` backend after every mutation.

Invariants
----------
- An ``enhanced`` entry always references an existing ``original`` entry.
  Attaching to a missing parent (or to another enhanced entry) is rejected,
  recorded as ``last_error`` and leaves the sequence untouched.
- Entries are never edited except for their ``isSelected`` flag, and are only
  removed all at once by :meth:`PromptLineageStore.clear_all`.
- A failed write is logged and stored as ``last_error``; the in-memory
  sequence is kept so the session carries on.

Legacy Migration
----------------
Older installs kept a flat history in which each record held both the
original prompt and (optionally) its enhanced text.  :meth:`migrate_legacy`
splits those records into linked original/enhanced pairs.  It only runs on an
empty store and clears the legacy document once the new sequence is written,
so running it twice has the same effect as running it once.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from .errors import LineageIntegrityError, PersistenceError
from .models import EntryType, PromptEntry, new_id, utc_now, validate_facet_snapshot

logger = logging.getLogger(__name__)


class LineagePersistence(ABC):
    """Backend holding the serialized lineage sequence and the legacy history."""

    @abstractmethod
    async def load(self) -> list[dict[str, Any]]:
        """Return the stored sequence (newest first)."""

    @abstractmethod
    async def save(self, entries: list[dict[str, Any]]) -> None:
        """Replace the stored sequence."""

    @abstractmethod
    async def load_legacy(self) -> list[dict[str, Any]]:
        """Return the legacy flat history, or an empty list."""

    @abstractmethod
    async def clear_legacy(self) -> None:
        """Remove the legacy flat history."""


class InMemoryLineagePersistence(LineagePersistence):
    def __init__(
        self,
        entries: list[dict[str, Any]] | None = None,
        legacy: list[dict[str, Any]] | None = None,
    ) -> None:
        self.entries: list[dict[str, Any]] = list(entries or [])
        self.legacy: list[dict[str, Any]] = list(legacy or [])

    async def load(self) -> list[dict[str, Any]]:
        return list(self.entries)

    async def save(self, entries: list[dict[str, Any]]) -> None:
        self.entries = list(entries)

    async def load_legacy(self) -> list[dict[str, Any]]:
        return list(self.legacy)

    async def clear_legacy(self) -> None:
        self.legacy = []


def _load_json_list(path: Path) -> list[Any]:
    if not path.exists():
        return []
    try:
        with open(path, encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read {path}: {e}")
        return []
    if isinstance(data, dict):
        # Some legacy files wrap the list: {"history": [...]}
        data = data.get("history", data.get("entries", []))
    if not isinstance(data, list):
        logger.warning(f"{path} does not hold a JSON list, ignoring it")
        return []
    return data


class JsonLineagePersistence(LineagePersistence):
    """Lineage sequence and legacy history as two JSON files."""

    def __init__(self, path: Path, legacy_path: Path | None = None) -> None:
        self.path = Path(path)
        self.legacy_path = Path(legacy_path) if legacy_path else None
        self.path.parent.mkdir(parents=True, exist_ok=True)

    async def load(self) -> list[dict[str, Any]]:
        return _load_json_list(self.path)

    async def save(self, entries: list[dict[str, Any]]) -> None:
        with open(self.path, "w", encoding="utf-8") as handle:
            json.dump(entries, handle, indent=2)

    async def load_legacy(self) -> list[dict[str, Any]]:
        if self.legacy_path is None:
            return []
        return _load_json_list(self.legacy_path)

    async def clear_legacy(self) -> None:
        if self.legacy_path is not None and self.legacy_path.exists():
            self.legacy_path.unlink()
            logger.info(f"Removed legacy history file {self.legacy_path}")


class PromptLineageStore:
    """Newest-first history of original and enhanced prompts.

    Args:
        persistence: Backend the sequence is mirrored to

    Attributes:
        last_error: The most recent integrity or persistence failure, if any
    """

    def __init__(self, persistence: LineagePersistence) -> None:
        self.persistence = persistence
        self._entries: list[PromptEntry] = []
        self._loaded = False
        self.last_error: LineageIntegrityError | PersistenceError | None = None

    async def load(self) -> list[PromptEntry]:
        """Load the persisted sequence, dropping invalid and orphaned entries."""
        try:
            raw_entries = await self.persistence.load()
        except Exception as e:
            logger.error(f"Failed to load prompt history: {e}")
            self.last_error = PersistenceError(f"Could not load history: {e}")
            raw_entries = []

        entries: list[PromptEntry] = []
        for raw in raw_entries:
            try:
                entries.append(PromptEntry.from_dict(raw))
            except ValueError as e:
                logger.warning(f"Dropping invalid history entry: {e}")

        original_ids = {e.id for e in entries if e.type is EntryType.ORIGINAL}
        kept = [e for e in entries if e.type is EntryType.ORIGINAL or e.parent_id in original_ids]
        if len(kept) != len(entries):
            logger.warning(f"Dropped {len(entries) - len(kept)} orphaned enhanced entries")

        self._entries = kept
        self._loaded = True
        logger.info(f"Loaded {len(self._entries)} history entries")
        return self.get_all()

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    async def _persist(self) -> bool:
        try:
            await self.persistence.save([e.to_dict() for e in self._entries])
        except Exception as e:
            logger.error(f"Failed to persist prompt history: {e}")
            self.last_error = PersistenceError(f"Could not save history: {e}")
            return False
        return True

    def get_all(self) -> list[PromptEntry]:
        return list(self._entries)

    def get(self, entry_id: str) -> PromptEntry | None:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def get_children(self, parent_id: str) -> list[PromptEntry]:
        """Enhanced entries derived from one original, newest first."""
        return [e for e in self._entries if e.parent_id == parent_id]

    def get_selected(self) -> list[PromptEntry]:
        return [e for e in self._entries if e.is_selected]

    async def add_original(
        self,
        prompt: str,
        options: dict[str, Any] | None = None,
        template_used: str = "standard",
    ) -> PromptEntry:
        """Record a draft prompt.

        Raises:
            ValueError: If ``options`` is not a valid facet snapshot
        """
        await self._ensure_loaded()
        entry = PromptEntry(
            id=new_id(),
            timestamp=utc_now(),
            prompt=prompt,
            template_used=template_used,
            type=EntryType.ORIGINAL,
            options=validate_facet_snapshot(options),
        )
        self._entries.insert(0, entry)
        await self._persist()
        logger.debug(f"Recorded original prompt {entry.id}")
        return entry

    async def add_enhanced(self, parent_id: str, enhanced_prompt: str, template_used: str) -> list[PromptEntry]:
        """Attach an enhanced prompt to an existing original.

        The new entry copies the parent's prompt text and options.  When the
        parent is missing or is not an original, nothing changes and
        ``last_error`` holds a :class:`LineageIntegrityError`.

        Returns:
            The (possibly unchanged) sequence, newest first
        """
        await self._ensure_loaded()
        parent = self.get(parent_id)
        if parent is None or parent.type is not EntryType.ORIGINAL:
            reason = "does not exist" if parent is None else "is not an original entry"
            error = LineageIntegrityError(f"Parent entry {parent_id} {reason}")
            logger.error(f"Rejected enhanced entry: {error.message}")
            self.last_error = error
            return self.get_all()

        entry = PromptEntry(
            id=new_id(),
            timestamp=utc_now(),
            prompt=parent.prompt,
            template_used=template_used,
            type=EntryType.ENHANCED,
            enhanced_prompt=enhanced_prompt,
            options=dict(parent.options),
            parent_id=parent.id,
        )
        self._entries.insert(0, entry)
        await self._persist()
        logger.debug(f"Recorded enhanced prompt {entry.id} for parent {parent.id}")
        return self.get_all()

    async def toggle_selection(self, entry_id: str, explicit: bool | None = None) -> list[PromptEntry]:
        """Flip (or set) the selection flag of one entry; unknown ids are ignored."""
        await self._ensure_loaded()
        entry = self.get(entry_id)
        if entry is None:
            logger.debug(f"toggle_selection: no entry {entry_id}")
            return self.get_all()
        entry.is_selected = (not entry.is_selected) if explicit is None else explicit
        await self._persist()
        return self.get_all()

    async def toggle_all_selection(self, selected: bool) -> list[PromptEntry]:
        await self._ensure_loaded()
        for entry in self._entries:
            entry.is_selected = selected
        await self._persist()
        return self.get_all()

    async def clear_all(self) -> None:
        await self._ensure_loaded()
        self._entries = []
        await self._persist()
        logger.info("Cleared prompt history")

    async def migrate_legacy(self) -> int:
        """Convert the legacy flat history into linked entries.

        Returns:
            Number of entries created (0 when there was nothing to do)
        """
        await self._ensure_loaded()
        try:
            legacy = await self.persistence.load_legacy()
        except Exception as e:
            logger.error(f"Failed to read legacy history: {e}")
            self.last_error = PersistenceError(f"Could not read legacy history: {e}")
            return 0

        if not legacy:
            return 0
        if self._entries:
            logger.info("History already populated, skipping legacy migration")
            return 0

        migrated: list[PromptEntry] = []
        used_ids: set[str] = set()
        # Legacy files are newest first; build oldest first and prepend
        for record in reversed(legacy):
            pair = _split_legacy_record(record, used_ids)
            if pair is None:
                continue
            for entry in pair:
                migrated.insert(0, entry)

        if not migrated:
            logger.warning("Legacy history held no usable records")
            return 0

        self._entries = migrated
        if not await self._persist():
            return len(migrated)

        try:
            await self.persistence.clear_legacy()
        except Exception as e:
            logger.error(f"Migrated history but could not clear legacy source: {e}")
            self.last_error = PersistenceError(f"Could not clear legacy history: {e}")

        logger.info(f"Migrated {len(legacy)} legacy records into {len(migrated)} entries")
        return len(migrated)


def _split_legacy_record(record: Any, used_ids: set[str]) -> list[PromptEntry] | None:
    """Turn one legacy record into ``[original]`` or ``[original, enhanced]``."""
    if not isinstance(record, dict):
        logger.warning(f"Skipping legacy record of type {type(record).__name__}")
        return None
    prompt = record.get("prompt") or record.get("originalPrompt")
    if not isinstance(prompt, str) or not prompt.strip():
        logger.warning("Skipping legacy record without prompt text")
        return None
    try:
        options = validate_facet_snapshot(record.get("options") or record.get("settings"))
    except ValueError as e:
        logger.warning(f"Dropping unusable options on legacy record: {e}")
        options = {}

    original_id = str(record.get("id") or "")
    if not original_id or original_id in used_ids:
        original_id = new_id()
    used_ids.add(original_id)

    timestamp = str(record.get("timestamp") or utc_now())
    template_used = str(record.get("templateUsed") or "standard")
    original = PromptEntry(
        id=original_id,
        timestamp=timestamp,
        prompt=prompt,
        template_used=template_used,
        type=EntryType.ORIGINAL,
        options=options,
    )

    enhanced_text = record.get("enhancedPrompt")
    if not isinstance(enhanced_text, str) or not enhanced_text.strip():
        return [original]

    enhanced = PromptEntry(
        id=new_id(),
        timestamp=timestamp,
        prompt=prompt,
        template_used=template_used,
        type=EntryType.ENHANCED,
        enhanced_prompt=enhanced_text,
        options=dict(options),
        parent_id=original_id,
    )
    return [original, enhanced]
