"""Tests for cvm.versions."""

from __future__ import annotations

import pytest

from cvm.errors import VersionFormatError
from cvm.models import Bump
from cvm.versions import (
    bump_patch,
    bump_version,
    from_pep440,
    is_valid_channel,
    parse_version,
    prerelease_version,
    split_prerelease,
    to_pep440,
)


class TestParseVersion:
    def test_full_version(self) -> None:
        v = parse_version("1.2.3")
        assert (v.major, v.minor, v.patch) == (1, 2, 3)

    def test_pads_incomplete_versions(self) -> None:
        assert str(parse_version("1")) == "1.0.0"
        assert str(parse_version("1.2")) == "1.2.0"

    def test_keeps_prerelease_and_build(self) -> None:
        v = parse_version("1.2.3-rc.1+build.5")
        assert v.prerelease == "rc.1"
        assert v.build == "build.5"

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_version("not-a-version")


class TestBumpVersion:
    @pytest.mark.parametrize(
        ("version", "bump", "expected"),
        [
            ("1.2.3", Bump.PATCH, "1.2.4"),
            ("1.2.3", Bump.MINOR, "1.3.0"),
            ("1.2.3", Bump.MAJOR, "2.0.0"),
            ("0.1.0", Bump.MINOR, "0.2.0"),
        ],
    )
    def test_stable(self, version: str, bump: Bump, expected: str) -> None:
        assert bump_version(version, bump) == expected

    def test_none_is_identity(self) -> None:
        assert bump_version("1.2.3", Bump.NONE) == "1.2.3"

    def test_releases_prerelease_base_when_covered(self) -> None:
        """A prerelease cut for a minor bump releases as its base."""
        assert bump_version("1.1.0-canary.2", Bump.MINOR) == "1.1.0"
        assert bump_version("1.1.0-canary.2", Bump.PATCH) == "1.1.0"

    def test_bumps_base_when_not_covered(self) -> None:
        assert bump_version("1.1.0-canary.2", Bump.MAJOR) == "2.0.0"
        assert bump_version("1.1.1-canary.1", Bump.MINOR) == "1.2.0"

    def test_drops_build_metadata(self) -> None:
        assert bump_version("1.0.0+abc", Bump.PATCH) == "1.0.1"

    def test_bump_patch(self) -> None:
        assert bump_patch("0.9.9") == "0.9.10"


class TestPrereleaseVersion:
    def test_starts_channel_from_stable(self) -> None:
        assert prerelease_version("1.0.0", Bump.MINOR, "canary") == "1.1.0-canary.1"
        assert prerelease_version("1.0.0", Bump.MAJOR, "beta") == "2.0.0-beta.1"
        assert prerelease_version("1.0.0", Bump.PATCH, "rc") == "1.0.1-rc.1"

    def test_increments_counter_on_same_channel(self) -> None:
        assert prerelease_version("1.1.0-canary.1", Bump.MINOR, "canary") == "1.1.0-canary.2"
        assert prerelease_version("1.1.0-canary.2", Bump.PATCH, "canary") == "1.1.0-canary.3"

    def test_stronger_bump_moves_base(self) -> None:
        assert prerelease_version("1.1.0-canary.3", Bump.MAJOR, "canary") == "2.0.0-canary.1"

    def test_new_channel_restarts_counter(self) -> None:
        assert prerelease_version("1.1.0-alpha.4", Bump.PATCH, "beta") == "1.1.0-beta.1"

    def test_none_counts_as_patch(self) -> None:
        assert prerelease_version("1.0.0", Bump.NONE, "canary") == "1.0.1-canary.1"


class TestChannels:
    @pytest.mark.parametrize("channel", ["canary", "rc", "beta-2", "next"])
    def test_valid(self, channel: str) -> None:
        assert is_valid_channel(channel)

    @pytest.mark.parametrize("channel", ["", "12", "bad.channel", "with space", "ünïcode"])
    def test_invalid(self, channel: str) -> None:
        assert not is_valid_channel(channel)

    def test_split_prerelease(self) -> None:
        assert split_prerelease("canary.3") == ("canary", 3)
        assert split_prerelease("beta") == ("beta", 0)


class TestPep440:
    @pytest.mark.parametrize(
        ("semver", "pep440"),
        [
            ("1.2.3", "1.2.3"),
            ("1.1.0-rc.2", "1.1.0rc2"),
            ("2.0.0-alpha.1", "2.0.0a1"),
            ("2.0.0-beta.3", "2.0.0b3"),
            ("1.0.1-dev.1", "1.0.1.dev1"),
        ],
    )
    def test_to_pep440(self, semver: str, pep440: str) -> None:
        assert to_pep440(semver) == pep440

    def test_unrepresentable_channel(self) -> None:
        with pytest.raises(VersionFormatError, match="PEP 440"):
            to_pep440("1.1.0-canary.1")

    @pytest.mark.parametrize(
        ("pep440", "semver"),
        [
            ("1.2", "1.2.0"),
            ("1.1.0rc2", "1.1.0-rc.2"),
            ("2.0.0a1", "2.0.0-alpha.1"),
            ("1.0.1.dev1", "1.0.1-dev.1"),
        ],
    )
    def test_from_pep440(self, pep440: str, semver: str) -> None:
        assert from_pep440(pep440) == semver

    @pytest.mark.parametrize("version", ["1!1.0.0", "1.0.0.post1", "1.0.0+local", "1.2.3.4", "nope"])
    def test_from_pep440_rejects(self, version: str) -> None:
        with pytest.raises(ValueError):
            from_pep440(version)
