"""Tests for cvm.changes."""

from __future__ import annotations

from pathlib import Path

import pytest
import tomlkit

from cvm.changes import add_change, consume_changes, parse_change, read_changes
from cvm.errors import InvalidChangeError
from cvm.models import Bump


def stage(directory: Path, name: str, text: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.toml"
    path.write_text(text)
    return path


class TestParseChange:
    def test_full(self, tmp_path: Path) -> None:
        text = 'summary = "Add x"\nmajor = ["core"]\nminor = []\npatch = ["cli"]\npre = true\n'
        change = parse_change(tmp_path / "0001-add-x.toml", text)
        assert change.id == "0001-add-x"
        assert change.summary == "Add x"
        assert change.major == {"core"}
        assert change.patch == {"cli"}
        assert change.pre
        assert change.bumps() == {"core": Bump.MAJOR, "cli": Bump.PATCH}

    def test_missing_fields_default(self, tmp_path: Path) -> None:
        change = parse_change(tmp_path / "a.toml", 'minor = ["core"]\n')
        assert change.summary == ""
        assert not change.pre
        assert change.packages == {"core"}

    def test_normalizes_names(self, tmp_path: Path) -> None:
        change = parse_change(tmp_path / "a.toml", 'patch = ["My_Pkg"]\n', str.lower)
        assert change.patch == {"my_pkg"}

    def test_overlapping_severities(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidChangeError, match="more than one severity") as exc_info:
            parse_change(tmp_path / "dup.toml", 'major = ["core"]\npatch = ["core"]\n')
        assert exc_info.value.descriptor == "dup"

    def test_unknown_key(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidChangeError, match="unknown keys"):
            parse_change(tmp_path / "a.toml", 'majr = ["core"]\n')

    def test_wrong_type(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidChangeError):
            parse_change(tmp_path / "a.toml", 'major = "core"\n')

    def test_syntax_error(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidChangeError, match="bad.toml"):
            parse_change(tmp_path / "bad.toml", "major = [\n")


class TestReadChanges:
    def test_missing_dir_is_empty(self, tmp_path: Path) -> None:
        assert read_changes(tmp_path / ".changes") == []

    def test_sorted_by_id(self, tmp_path: Path) -> None:
        staging = tmp_path / ".changes"
        stage(staging, "b", 'patch = ["core"]\n')
        stage(staging, "a", 'minor = ["core"]\n')
        stage(staging, "c", 'major = ["cli"]\n')
        (staging / "README.md").write_text("not a change")
        assert [c.id for c in read_changes(staging)] == ["a", "b", "c"]

    def test_invalid_file_fails_whole_read(self, tmp_path: Path) -> None:
        staging = tmp_path / ".changes"
        stage(staging, "good", 'patch = ["core"]\n')
        stage(staging, "bad", "patch = \n")
        with pytest.raises(InvalidChangeError):
            read_changes(staging)


class TestAddChange:
    def test_writes_file(self, tmp_path: Path) -> None:
        staging = tmp_path / ".changes"
        change = add_change(staging, summary="Fix bug", patch=["core"], minor=["cli"])
        assert change.path is not None and change.path.exists()
        assert change.path.parent == staging
        data = tomlkit.parse(change.path.read_text()).unwrap()
        assert data == {
            "summary": "Fix bug",
            "major": [],
            "minor": ["cli"],
            "patch": ["core"],
            "pre": False,
        }

    def test_round_trips_through_read(self, tmp_path: Path) -> None:
        staging = tmp_path / ".changes"
        added = add_change(staging, summary="Fix", major=["core"], pre=True)
        [read] = read_changes(staging)
        assert read.id == added.id
        assert read.major == {"core"}
        assert read.pre

    def test_requires_a_package(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidChangeError, match="at least one package"):
            add_change(tmp_path, summary="Nothing")

    def test_rejects_overlap(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidChangeError):
            add_change(tmp_path, summary="x", major=["core"], minor=["core"])


class TestConsumeChanges:
    def test_deletes_files(self, tmp_path: Path) -> None:
        staging = tmp_path / ".changes"
        stage(staging, "a", 'patch = ["core"]\n')
        stage(staging, "b", 'patch = ["cli"]\n')
        changes = read_changes(staging)
        deleted = consume_changes(changes)
        assert len(deleted) == 2
        assert list(staging.glob("*.toml")) == []
