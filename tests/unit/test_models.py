"""Tests for promptcraft.core.models - templates, entries and snapshots."""

from __future__ import annotations

import pytest

from promptcraft.core.models import (
    EntryType,
    PromptEntry,
    Template,
    clamp_compression_level,
    validate_facet_snapshot,
)


class TestFacetSnapshot:
    def test_none_is_empty(self):
        assert validate_facet_snapshot(None) == {}

    def test_returns_copy(self):
        options = {"pose": "standing", "lighting": ["rim", "soft"]}
        result = validate_facet_snapshot(options)
        assert result == options
        assert result is not options

    def test_rejects_non_mapping(self):
        with pytest.raises(ValueError):
            validate_facet_snapshot(["pose"])

    def test_rejects_non_string_keys(self):
        with pytest.raises(ValueError):
            validate_facet_snapshot({1: "a"})

    def test_rejects_unserializable_values(self):
        with pytest.raises(ValueError):
            validate_facet_snapshot({"when": object()})


class TestTemplate:
    def test_compression_level_clamped(self):
        assert Template(id="t", compression_level=42).compression_level == 10
        assert Template(id="t", compression_level=0).compression_level == 1
        assert clamp_compression_level("bogus") == 5

    def test_merged_keeps_id(self):
        template = Template(id="standard", master_prompt="A")
        merged = template.merged(master_prompt="B", id="other")
        assert merged.id == "standard"
        assert merged.master_prompt == "B"
        assert template.master_prompt == "A"

    def test_merged_rejects_unknown_field(self):
        with pytest.raises(ValueError, match="Unknown template fields"):
            Template(id="t").merged(colour="red")

    def test_from_document_accepts_camel_case(self):
        template = Template.from_document(
            "custom1",
            {
                "masterPrompt": "Write tersely",
                "llm_provider": "anthropic",
                "llmModel": "claude",
                "useHappyTalk": True,
                "unknown": "ignored",
                "usage_rules": None,
            },
        )
        assert template.id == "custom1"
        assert template.master_prompt == "Write tersely"
        assert template.provider == "anthropic"
        assert template.model == "claude"
        assert template.use_happy_talk is True
        assert template.usage_rules == ""


class TestPromptEntry:
    def test_round_trip_uses_camel_case(self):
        entry = PromptEntry(
            id="e1",
            timestamp="2024-01-01T00:00:00+00:00",
            prompt="a cat",
            template_used="standard",
            type=EntryType.ENHANCED,
            enhanced_prompt="a majestic cat",
            parent_id="o1",
        )
        data = entry.to_dict()
        assert data["parentId"] == "o1"
        assert data["enhancedPrompt"] == "a majestic cat"
        assert data["templateUsed"] == "standard"
        assert PromptEntry.from_dict(data) == entry

    def test_original_omits_parent(self):
        data = PromptEntry(id="o1", timestamp="t", prompt="a cat", template_used="standard").to_dict()
        assert "parentId" not in data
        assert "enhancedPrompt" not in data

    def test_enhanced_without_parent_rejected(self):
        with pytest.raises(ValueError):
            PromptEntry.from_dict({"id": "e1", "prompt": "x", "type": "enhanced"})

    def test_missing_prompt_rejected(self):
        with pytest.raises(ValueError):
            PromptEntry.from_dict({"id": "e1"})

    def test_original_drops_stray_parent(self):
        entry = PromptEntry.from_dict({"id": "o1", "prompt": "x", "parentId": "p"})
        assert entry.parent_id is None
        assert entry.template_used == "standard"

    @pytest.mark.parametrize("stored", ["false", "true", 1, "yes", None])
    def test_selection_requires_real_boolean(self, stored):
        entry = PromptEntry.from_dict({"id": "o1", "prompt": "x", "isSelected": stored})
        assert entry.is_selected is False

    def test_selection_true_kept(self):
        assert PromptEntry.from_dict({"id": "o1", "prompt": "x", "isSelected": True}).is_selected is True
