import json

import pytest

from graphsnap import cli
from graphsnap.encoder import encode_tree
from graphsnap.storage import SnapshotStore


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)


@pytest.fixture
def snapshot_file(tmp_path, world):
    return SnapshotStore(tmp_path).save("world", encode_tree(world))


def test_inspect_prints_summary(snapshot_file, capsys):
    assert cli.main(["inspect", str(snapshot_file)]) == 0
    out = capsys.readouterr().out
    assert "objects:        6" in out
    assert "structural:     5 (3 anchored)" in out
    assert "root:           anchored" in out
    assert "[0] graphsnap.testing:Unit x2" in out
    assert "[1] graphsnap.testing:Item x1" in out


def test_validate_ok(snapshot_file, capsys):
    assert cli.main(["validate", str(snapshot_file)]) == 0
    assert capsys.readouterr().out.startswith("OK:")


def test_validate_reports_invalid_and_missing(tmp_path, snapshot_file, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"version": 1, "object_count": "many"}), encoding="utf-8")
    missing = tmp_path / "missing.json"

    assert cli.main(["validate", str(snapshot_file), str(bad), str(missing)]) == 1
    out = capsys.readouterr().out
    assert f"OK: {snapshot_file}" in out
    assert f"INVALID: {bad}" in out
    assert "at object_count" in out
    assert f"ERROR: {missing}" in out


def test_inspect_invalid_file(tmp_path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text("[]", encoding="utf-8")
    assert cli.main(["inspect", str(bad)]) == 1
    assert "INVALID" in capsys.readouterr().out


def test_settings_file_controls_validation(tmp_path, capsys):
    settings = tmp_path / "codec.yaml"
    settings.write_text("validate_records: false\n", encoding="utf-8")
    loose = tmp_path / "loose.json"
    data = {"version": 1, "object_count": 0, "types": [""], "structural": [], "freestanding": []}
    loose.write_text(json.dumps(data), encoding="utf-8")

    assert cli.main(["--settings", str(settings), "inspect", str(loose)]) == 0
    assert "objects:        0" in capsys.readouterr().out


def test_requires_subcommand():
    with pytest.raises(SystemExit):
        cli.main([])
