import json
from pathlib import Path

import pytest

from memebridge.catalog import (
    DuplicateMemeError,
    InvalidMemeError,
    MemeCatalog,
    MemeNotFoundError,
    TriggerDefinition,
)


def _catalog(tmp_path: Path) -> MemeCatalog:
    catalog = MemeCatalog(tmp_path / "memes.json")
    catalog.ensure_file()
    return catalog


def test_ensure_file_writes_default_memes(tmp_path: Path) -> None:
    catalog = _catalog(tmp_path)

    data = json.loads((tmp_path / "memes.json").read_text(encoding="utf-8"))

    assert [m["namespace"] for m in data] == ["emodmg", "godno"]
    assert data[1] == {"namespace": "godno", "command": "!nooo", "filePath": "godno.gif", "duration": 10000}
    assert [m.command for m in catalog.list()] == ["!emodmg", "!nooo"]


def test_load_falls_back_to_defaults_on_broken_file(tmp_path: Path) -> None:
    path = tmp_path / "memes.json"
    path.write_text("{not json", encoding="utf-8")

    memes = MemeCatalog(path).load()

    assert [m.namespace for m in memes] == ["emodmg", "godno"]


def test_load_skips_invalid_records(tmp_path: Path) -> None:
    path = tmp_path / "memes.json"
    path.write_text(
        json.dumps([
            {"namespace": "ok", "command": "!ok", "filePath": "ok.gif", "duration": 1000},
            {"namespace": "nofile", "command": "!nofile", "duration": 1000},
            {"namespace": "neg", "command": "!neg", "filePath": "neg.gif", "duration": -5},
        ]),
        encoding="utf-8",
    )

    assert [m.namespace for m in MemeCatalog(path).load()] == ["ok"]


def test_create_get_update_delete(tmp_path: Path) -> None:
    catalog = _catalog(tmp_path)

    created = catalog.create({"namespace": "wow", "command": "!wow", "filePath": "wow.mp4", "duration": "3000"})
    assert created.duration_ms == 3000
    assert catalog.get("wow").asset_ref == "wow.mp4"

    updated = catalog.update("wow", {"duration": 4000, "namespace": "ignored"})
    assert updated.namespace == "wow"
    assert updated.command == "!wow"
    assert updated.duration_ms == 4000

    catalog.delete("wow")
    with pytest.raises(MemeNotFoundError):
        catalog.get("wow")
    assert len(catalog.list()) == 2


def test_create_rejects_duplicates_and_missing_fields(tmp_path: Path) -> None:
    catalog = _catalog(tmp_path)

    with pytest.raises(DuplicateMemeError, match="Namespace already exists"):
        catalog.create({"namespace": "godno", "command": "!other", "filePath": "x.gif", "duration": 1})
    with pytest.raises(DuplicateMemeError, match="Command already exists"):
        catalog.create({"namespace": "other", "command": "!NOOO", "filePath": "x.gif", "duration": 1})
    with pytest.raises(InvalidMemeError, match="All fields are required"):
        catalog.create({"namespace": "other", "command": "!other"})


def test_update_rejects_command_taken_by_another_meme(tmp_path: Path) -> None:
    catalog = _catalog(tmp_path)

    with pytest.raises(DuplicateMemeError):
        catalog.update("emodmg", {"command": "!nooo"})
    with pytest.raises(MemeNotFoundError):
        catalog.update("missing", {"duration": 1})


def test_obs_source_name_defaults_to_namespace() -> None:
    memes = [
        TriggerDefinition("wow", "!wow", "wow.gif", 1000),
        TriggerDefinition("obs", "!obs", "obs.gif", 1000, source_name="Custom Source"),
    ]

    assert memes[0].obs_source_name == "wow_meme"
    assert memes[1].obs_source_name == "Custom Source"
    assert memes[1].to_dict()["sourceName"] == "Custom Source"
