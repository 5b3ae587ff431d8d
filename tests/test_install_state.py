import json

import pytest

from layersync.errors import StateCorruptionError
from layersync.file_store import LocalFileStore
from layersync.install_state import (
    STATE_KEY,
    InstallationState,
    Selection,
    load_state,
    quarantine_state,
    remove_state,
    save_state,
)
from layersync.layers import LayerName, content_hash, make_layer


def test_missing_state_loads_empty_and_trusted(tmp_path):
    state = load_state(LocalFileStore(tmp_path))
    assert state.files == {}
    assert state.selection is None
    assert state.trusted


def test_saved_state_keeps_records_and_selection(tmp_path):
    store = LocalFileStore(tmp_path)
    state = InstallationState()
    state.selection = Selection(
        scope="project",
        layers=[make_layer(LayerName.BASE, tmp_path / "home"), make_layer(LayerName.PROJECT, tmp_path / "local")],
        tools=["cursor"],
        prefix=".agent-os",
    )
    state.commit(".agent-os/standards/a.md", "base", content_hash(b"A"))
    save_state(store, state)

    loaded = load_state(store)

    assert loaded.installed_paths() == [".agent-os/standards/a.md"]
    record = loaded.record(".agent-os/standards/a.md")
    assert record.layer == "base"
    assert record.hash == content_hash(b"A")
    assert record.pending_hash is None
    assert loaded.selection.scope == "project"
    assert [layer.name for layer in loaded.selection.layers] == [LayerName.BASE, LayerName.PROJECT]
    assert loaded.selection.layers[0].mandatory
    assert loaded.selection.tools == ["cursor"]

    payload = json.loads((tmp_path / STATE_KEY).read_text(encoding="utf-8"))
    assert payload["schema_version"] == "1.0"
    assert "pending_hash" not in payload["files"][".agent-os/standards/a.md"]


def test_pending_then_commit_and_discard():
    state = InstallationState()
    old, new = content_hash(b"old"), content_hash(b"new")

    state.mark_pending("a.md", "base", new)
    assert state.record("a.md").hash == new
    state.discard_pending("a.md")
    assert state.record("a.md") is None

    state.commit("a.md", "base", old)
    state.mark_pending("a.md", "team", new)
    assert state.record("a.md").hash == old
    assert state.record("a.md").pending_hash == new
    state.discard_pending("a.md")
    assert state.record("a.md").pending_hash is None
    assert state.record("a.md").hash == old

    state.mark_pending("a.md", "team", new)
    state.commit("a.md", "team", new)
    assert state.record("a.md").hash == new
    assert state.record("a.md").layer == "team"
    assert state.record("a.md").pending_hash is None


def test_unparseable_state_raises_corruption(tmp_path):
    (tmp_path / STATE_KEY).write_text("{not json", encoding="utf-8")
    with pytest.raises(StateCorruptionError):
        load_state(LocalFileStore(tmp_path))


def test_state_failing_schema_raises_corruption(tmp_path):
    payload = {
        "schema_version": "1.0",
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
        "files": {"standards/a.md": {"layer": "base", "hash": "not-a-digest", "synced_at": "x"}},
    }
    (tmp_path / STATE_KEY).write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(StateCorruptionError) as excinfo:
        load_state(LocalFileStore(tmp_path))
    assert "standards/a.md" in str(excinfo.value)


def state_with_selection(layer, tools):
    return {
        "schema_version": "1.0",
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
        "files": {},
        "selection": {"scope": "base", "layers": [layer], "tools": tools, "prefix": ""},
    }


def test_stored_layer_precedence_is_not_trusted(tmp_path):
    layer = {"name": "base", "root": str(tmp_path / "home"), "precedence": 99, "mandatory": False}
    (tmp_path / STATE_KEY).write_text(json.dumps(state_with_selection(layer, [])), encoding="utf-8")

    loaded = load_state(LocalFileStore(tmp_path)).selection.layers[0]

    assert loaded.precedence == 0
    assert loaded.mandatory


def test_unknown_stored_tool_raises_corruption(tmp_path):
    layer = {"name": "base", "root": str(tmp_path / "home"), "precedence": 0, "mandatory": True}
    (tmp_path / STATE_KEY).write_text(json.dumps(state_with_selection(layer, ["vim"])), encoding="utf-8")

    with pytest.raises(StateCorruptionError) as excinfo:
        load_state(LocalFileStore(tmp_path))
    assert "selection/tools/0" in str(excinfo.value)


def test_quarantine_and_remove(tmp_path):
    store = LocalFileStore(tmp_path)
    assert quarantine_state(store) is None

    (tmp_path / STATE_KEY).write_text("garbage", encoding="utf-8")
    target = quarantine_state(store)

    assert target.startswith(f"{STATE_KEY}.corrupt.")
    assert store.read_text(target) == "garbage"
    assert remove_state(store) is True
    assert remove_state(store) is False
