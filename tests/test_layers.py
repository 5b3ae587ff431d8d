import json

import pytest

from layersync.errors import ManifestReadError
from layersync.layers import LayerName, content_hash, make_layer, read_layer


def write_files(root, files):
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


def test_precedence_orders_base_team_project(tmp_path):
    base = make_layer(LayerName.BASE, tmp_path / "base")
    team = make_layer(LayerName.TEAM, tmp_path / "team")
    project = make_layer(LayerName.PROJECT, tmp_path / "project")

    assert base.precedence < team.precedence < project.precedence
    assert base.mandatory
    assert not team.mandatory and not project.mandatory


def test_read_layer_is_sorted_and_skips_hidden_and_backups(tmp_path):
    source = tmp_path / "base"
    write_files(
        source,
        {
            "standards/zeta.md": "z",
            "standards/alpha.md": "a",
            "standards/code-style/python.md": "py",
            "commands/create-spec.md": "cmd",
            "instructions/plan-product.md": "plan",
            "standards/.DS_Store": "junk",
            "standards/alpha.md.backup.20260101-000000": "old",
            "README.md": "not declared",
        },
    )
    layer = make_layer(LayerName.BASE, source)

    entries = read_layer(layer, str(tmp_path / "dest"))

    assert [entry.logical_path for entry in entries] == [
        "commands/create-spec.md",
        "instructions/plan-product.md",
        "standards/alpha.md",
        "standards/code-style/python.md",
        "standards/zeta.md",
    ]
    alpha = entries[2]
    assert alpha.content == b"a"
    assert alpha.content_hash == content_hash(b"a")
    assert alpha.source_layer == layer
    assert alpha.destination_path == str(tmp_path / "dest" / "standards" / "alpha.md")


def test_read_layer_applies_prefix(tmp_path):
    source = tmp_path / "base"
    write_files(source, {"standards/a.md": "a"})

    entries = read_layer(make_layer(LayerName.BASE, source), str(tmp_path / "proj"), prefix=".agent-os")

    assert entries[0].logical_path == ".agent-os/standards/a.md"
    assert entries[0].destination_path == str(tmp_path / "proj" / ".agent-os" / "standards" / "a.md")


def test_missing_mandatory_layer_raises(tmp_path):
    layer = make_layer(LayerName.BASE, tmp_path / "nope")
    with pytest.raises(ManifestReadError) as excinfo:
        read_layer(layer, str(tmp_path / "dest"))
    assert "base" in str(excinfo.value)
    assert excinfo.value.layer == "base"


def test_missing_optional_layer_is_empty(tmp_path):
    assert read_layer(make_layer(LayerName.TEAM, tmp_path / "nope"), str(tmp_path)) == []
    assert read_layer(make_layer(LayerName.PROJECT, tmp_path / "nope"), str(tmp_path)) == []


def test_layer_manifest_selects_directories_and_excludes(tmp_path):
    source = tmp_path / "team"
    write_files(
        source,
        {
            "standards/a.md": "a",
            "standards/draft.wip.md": "wip",
            "playbooks/review.md": "review",
            "commands/x.md": "not listed",
        },
    )
    (source / "layer.json").write_text(
        json.dumps({"directories": ["standards", "playbooks"], "exclude": ["*.wip.md"]}),
        encoding="utf-8",
    )

    entries = read_layer(make_layer(LayerName.TEAM, source), str(tmp_path / "dest"))

    assert [entry.logical_path for entry in entries] == ["playbooks/review.md", "standards/a.md"]


def test_invalid_layer_manifest_raises(tmp_path):
    source = tmp_path / "team"
    source.mkdir()
    (source / "layer.json").write_text(json.dumps({"directories": "standards"}), encoding="utf-8")

    with pytest.raises(ManifestReadError) as excinfo:
        read_layer(make_layer(LayerName.TEAM, source), str(tmp_path / "dest"))
    assert "layer.json" in str(excinfo.value)


def test_layer_manifest_cannot_escape_root(tmp_path):
    source = tmp_path / "team"
    source.mkdir()
    (source / "layer.json").write_text(json.dumps({"directories": ["standards/../../etc"]}), encoding="utf-8")

    with pytest.raises(ManifestReadError):
        read_layer(make_layer(LayerName.TEAM, source), str(tmp_path / "dest"))
