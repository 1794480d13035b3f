"""Tests for cvm.config."""

from __future__ import annotations

import pytest

from cvm.config import CvmConfig, parse_config
from cvm.errors import ConfigError


class TestParseConfig:
    def test_defaults(self) -> None:
        config = parse_config({})
        assert config.staging_dir == ".changes"
        assert config.propagation == "patch"
        assert config.constraint == "preserve"
        assert config.max_attempts == 3

    def test_overrides(self) -> None:
        config = parse_config({"propagation": "inherit", "max_attempts": 5, "pr_labels": ["a"]})
        assert config.propagation == "inherit"
        assert config.max_attempts == 5
        assert config.pr_labels == ["a"]

    def test_unknown_key_suggests(self) -> None:
        with pytest.raises(ConfigError, match="propogation") as exc_info:
            parse_config({"propogation": "patch"})
        assert "propagation" in exc_info.value.hint

    def test_unknown_key_without_suggestion(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config({"zzzzzz": 1})
        assert exc_info.value.hint == ""

    def test_invalid_value(self) -> None:
        with pytest.raises(ConfigError, match="propagation"):
            parse_config({"propagation": "everything"})

    def test_out_of_range(self) -> None:
        with pytest.raises(ConfigError, match="max_attempts"):
            parse_config({"max_attempts": 0})


class TestTagFor:
    def test_multi_package(self) -> None:
        assert CvmConfig().tag_for("core", "2.0.0", single=False) == "core/v2.0.0"

    def test_single_package(self) -> None:
        assert CvmConfig().tag_for("core", "2.0.0", single=True) == "v2.0.0"

    def test_custom_format(self) -> None:
        config = CvmConfig(tag_format="{name}@{version}")
        assert config.tag_for("core", "1.0.0", single=False) == "core@1.0.0"
