"""Tests for promptcraft.core.presets - preset storage and import/export."""

from __future__ import annotations

import json

import pytest

from promptcraft.core.errors import ImportValidationError
from promptcraft.core.presets import PresetStore


@pytest.fixture
def store() -> PresetStore:
    return PresetStore()


class TestSaveAndQuery:
    def test_save_assigns_id(self, store: PresetStore):
        preset = store.save("Portrait", "Close-up", {"pose": "seated"})
        assert preset.id
        assert store.get(preset.id) == preset

    def test_save_same_id_replaces(self, store: PresetStore):
        first = store.save("Portrait", None, {"pose": "seated"})
        second = store.save("Portrait v2", None, {"pose": "standing"}, preset_id=first.id)
        assert len(store.list()) == 1
        assert store.get(first.id).name == "Portrait v2"
        assert second.created_at == first.created_at

    def test_blank_name_rejected(self, store: PresetStore):
        with pytest.raises(ValueError):
            store.save("  ")

    def test_favorites_filter(self, store: PresetStore):
        store.save("A", favorite=True)
        store.save("B")
        assert [p.name for p in store.list(favorites_only=True)] == ["A"]

    def test_delete(self, store: PresetStore):
        preset = store.save("A")
        assert store.delete(preset.id) is True
        assert store.delete(preset.id) is False
        assert store.get(preset.id) is None

    def test_toggle_favorite(self, store: PresetStore):
        preset = store.save("A")
        assert store.toggle_favorite(preset.id) is True
        assert store.toggle_favorite(preset.id) is False
        assert store.toggle_favorite("unknown") is False


class TestImportExport:
    def test_round_trip(self, store: PresetStore):
        store.save("A", "first", {"pose": "seated"}, favorite=True)
        store.save("B", None, {"lighting": ["rim", "soft"]})
        exported = store.export_all()
        assert exported["version"] == 1

        other = PresetStore()
        assert other.import_all(exported) is True
        assert other.export_all() == exported

    def test_import_survives_json(self, store: PresetStore):
        store.save("A", None, {"pose": "seated"})
        document = json.loads(json.dumps(store.export_all()))
        other = PresetStore()
        assert other.import_all(document) is True
        assert other.list()[0].options == {"pose": "seated"}

    def test_import_merges_by_id(self, store: PresetStore):
        existing = store.save("Old name")
        store.save("Untouched")
        document = {"version": 1, "presets": [{"id": existing.id, "name": "New name"}]}
        assert store.import_all(document) is True
        assert store.get(existing.id).name == "New name"
        assert len(store.list()) == 2

    @pytest.mark.parametrize(
        "document",
        [
            "not a document",
            {"version": 1},
            {"version": 1, "presets": [{"id": "x"}]},
            {"version": 1, "presets": [{"id": "x", "name": "X", "favorite": "yes"}]},
            {"version": 1, "presets": [{"id": "x", "name": "X"}, {"id": "x", "name": "Y"}]},
            {"version": 1, "presets": [{"id": "ok", "name": "Fine"}, {"name": "missing id"}]},
        ],
    )
    def test_invalid_import_changes_nothing(self, store: PresetStore, document):
        store.save("Keep me")
        before = store.export_all()

        assert store.import_all(document) is False
        assert store.export_all() == before
        assert isinstance(store.last_error, ImportValidationError)


class TestFilePersistence:
    def test_reload_from_disk(self, temp_dir):
        path = temp_dir / "presets.json"
        store = PresetStore(path)
        preset = store.save("A", None, {"pose": "seated"}, favorite=True)

        reloaded = PresetStore(path)
        assert reloaded.get(preset.id) == preset

    def test_corrupt_file_starts_empty(self, temp_dir):
        path = temp_dir / "presets.json"
        path.write_text("{not json")
        assert PresetStore(path).list() == []
