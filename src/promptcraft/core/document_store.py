"""Key-value document stores for saved templates.

The template document store is an external collaborator: a key→document
service keyed by template id.  ``get`` returns ``None`` for a missing key and
never raises on "not found"; any other failure (unreadable file, broken
backend) may raise, and callers treat it as "no result".

Two implementations ship with the package:

- :class:`JsonDocumentStore` keeps every document in a single JSON object on
  disk.  A missing or invalid file reads as an empty store.
- :class:`InMemoryDocumentStore` is used by tests and for ephemeral sessions.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Async key→document interface."""

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the document stored under ``key``, or ``None``."""

    @abstractmethod
    async def put(self, key: str, document: dict[str, Any]) -> None:
        """Store ``document`` under ``key``, replacing any previous value."""


class InMemoryDocumentStore(DocumentStore):
    def __init__(self, documents: dict[str, dict[str, Any]] | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = dict(documents or {})

    async def get(self, key: str) -> dict[str, Any] | None:
        document = self._documents.get(key)
        return dict(document) if document is not None else None

    async def put(self, key: str, document: dict[str, Any]) -> None:
        self._documents[key] = dict(document)


def _load_json_object(path: Path) -> dict[str, Any]:
    """Read a JSON object from disk, returning an empty dict if absent or invalid."""
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read document store {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Document store {path} does not hold a JSON object, ignoring it")
        return {}
    return data


class JsonDocumentStore(DocumentStore):
    """Single-file JSON document store.

    The file holds one JSON object mapping key → document.  Every ``put``
    rewrites the whole file; last successful write wins.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    async def get(self, key: str) -> dict[str, Any] | None:
        document = _load_json_object(self.path).get(key)
        if document is not None and not isinstance(document, dict):
            logger.warning(f"Ignoring non-object document for key '{key}' in {self.path}")
            return None
        return document

    async def put(self, key: str, document: dict[str, Any]) -> None:
        documents = _load_json_object(self.path)
        documents[key] = document
        with open(self.path, "w", encoding="utf-8") as handle:
            json.dump(documents, handle, indent=2)
        logger.debug(f"Stored document '{key}' in {self.path}")
