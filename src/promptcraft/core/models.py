"""Data models for templates, lineage entries, diagnostics and presets."""

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

# Compression level bounds shared by templates and enhancement requests
MIN_COMPRESSION_LEVEL = 1
MAX_COMPRESSION_LEVEL = 10
DEFAULT_COMPRESSION_LEVEL = 5


def new_id() -> str:
    """Return a fresh unique identifier."""
    return uuid.uuid4().hex


def utc_now() -> str:
    """Return the current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def clamp_compression_level(level: Any) -> int:
    """Coerce a compression level into the supported 1..10 range."""
    try:
        value = int(level)
    except (TypeError, ValueError):
        return DEFAULT_COMPRESSION_LEVEL
    return min(max(value, MIN_COMPRESSION_LEVEL), MAX_COMPRESSION_LEVEL)


def validate_facet_snapshot(options: Any) -> dict[str, Any]:
    """Validate an opaque facet snapshot at a storage boundary.

    The snapshot is never interpreted; it only has to be a string-keyed
    mapping that survives a JSON round trip.

    Args:
        options: Candidate snapshot (``None`` is treated as empty)

    Returns:
        A plain dict copy of the snapshot

    Raises:
        ValueError: If the snapshot is not a string-keyed, JSON-serializable mapping
    """
    if options is None:
        return {}
    if not isinstance(options, dict):
        raise ValueError(f"Facet snapshot must be a mapping, got {type(options).__name__}")
    if not all(isinstance(key, str) for key in options):
        raise ValueError("Facet snapshot keys must be strings")
    try:
        return json.loads(json.dumps(options))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Facet snapshot is not JSON-serializable: {e}") from e


class TemplateSource(str, Enum):
    """Which resolution tier produced a template's instructions."""

    OVERRIDE = "override"
    DATABASE = "database"
    MEMORY = "memory"
    BUILTIN = "builtin"


class EntryType(str, Enum):
    ORIGINAL = "original"
    ENHANCED = "enhanced"


@dataclass
class Template:
    """A named bundle of enhancement instructions plus provider defaults.

    ``provider`` and ``model`` may be empty on stored copies, in which case the
    resolver falls through to the next tier or the configured defaults.
    """

    id: str
    name: str = ""
    master_prompt: str = ""
    format_template: str = "{prompt}"
    usage_rules: str = ""
    provider: str = ""
    model: str = ""
    use_happy_talk: bool = False
    compress_prompt: bool = False
    compression_level: int = DEFAULT_COMPRESSION_LEVEL

    def __post_init__(self) -> None:
        self.compression_level = clamp_compression_level(self.compression_level)

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    def merged(self, **updates: Any) -> "Template":
        """Return a copy with ``updates`` applied.

        Raises:
            ValueError: If an update names a field Template does not have
        """
        unknown = set(updates) - self.field_names()
        if unknown:
            raise ValueError(f"Unknown template fields: {', '.join(sorted(unknown))}")
        data = asdict(self)
        data.update(updates)
        data["id"] = self.id
        return Template(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_document(cls, template_id: str, document: dict[str, Any]) -> "Template":
        """Build a template from a stored document, ignoring unknown keys.

        Stored documents may use either snake_case field names or the
        camelCase names used by older clients (``masterPrompt`` etc.).
        """
        aliases = {
            "masterPrompt": "master_prompt",
            "formatTemplate": "format_template",
            "usageRules": "usage_rules",
            "llmProvider": "provider",
            "llm_provider": "provider",
            "llmModel": "model",
            "llm_model": "model",
            "useHappyTalk": "use_happy_talk",
            "compressPrompt": "compress_prompt",
            "compressionLevel": "compression_level",
        }
        known = cls.field_names()
        data: dict[str, Any] = {}
        for key, value in document.items():
            name = aliases.get(key, key)
            if name in known and value is not None:
                data[name] = value
        data["id"] = template_id
        return cls(**data)


@dataclass
class PromptEntry:
    """One record in the prompt history.

    Serialized with camelCase keys so stored documents stay readable by the
    legacy history format.
    """

    id: str
    timestamp: str
    prompt: str
    template_used: str
    type: EntryType = EntryType.ORIGINAL
    enhanced_prompt: str | None = None
    options: dict[str, Any] = field(default_factory=dict)
    parent_id: str | None = None
    is_selected: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "prompt": self.prompt,
            "options": self.options,
            "templateUsed": self.template_used,
            "isSelected": self.is_selected,
            "type": self.type.value,
        }
        if self.enhanced_prompt is not None:
            data["enhancedPrompt"] = self.enhanced_prompt
        if self.parent_id is not None:
            data["parentId"] = self.parent_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PromptEntry":
        """Parse a stored entry.

        Raises:
            ValueError: If required fields are missing or the type/parent
                combination is inconsistent
        """
        if not isinstance(data, dict):
            raise ValueError("Entry must be a mapping")
        if not data.get("id") or not isinstance(data.get("prompt"), str):
            raise ValueError("Entry requires 'id' and 'prompt'")

        entry_type = EntryType(data.get("type", EntryType.ORIGINAL.value))
        parent_id = data.get("parentId")
        if entry_type is EntryType.ENHANCED and not parent_id:
            raise ValueError(f"Enhanced entry {data['id']} has no parentId")
        if entry_type is EntryType.ORIGINAL:
            parent_id = None

        return cls(
            id=str(data["id"]),
            timestamp=str(data.get("timestamp") or utc_now()),
            prompt=data["prompt"],
            template_used=str(data.get("templateUsed") or "standard"),
            type=entry_type,
            enhanced_prompt=data.get("enhancedPrompt"),
            options=validate_facet_snapshot(data.get("options")),
            parent_id=parent_id,
            is_selected=data.get("isSelected") is True,
        )


@dataclass
class LlmParams:
    use_happy_talk: bool
    compress_prompt: bool
    compression_level: int
    master_prompt_length: int
    token_count: int | None = None


@dataclass
class DiagnosticsError:
    type: str
    message: str
    handled_by: str


@dataclass
class EnhancementDiagnostics:
    """Ephemeral record of how one enhancement call was carried out."""

    provider: str
    model: str
    template_source: TemplateSource
    llm_params: LlmParams
    timestamp: str = field(default_factory=utc_now)
    response_time_ms: int = 0
    fallback_used: bool = False
    errors: list[DiagnosticsError] = field(default_factory=list)

    def add_error(self, type_: str, message: str, handled_by: str) -> None:
        self.errors.append(DiagnosticsError(type=type_, message=message, handled_by=handled_by))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["template_source"] = self.template_source.value
        return data


@dataclass
class Preset:
    """A named, favoritable snapshot of facet selections."""

    id: str
    name: str
    options: dict[str, Any] = field(default_factory=dict)
    description: str | None = None
    favorite: bool = False
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
