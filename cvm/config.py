"""Configuration for cvm.

Settings live in the workspace root manifest:

- ``pyproject.toml``: ``[tool.cvm]``
- ``Cargo.toml``: ``[workspace.metadata.cvm]``

Example::

    [tool.cvm]
    staging_dir = ".changes"
    propagation = "patch"        # or "inherit"
    constraint = "preserve"      # or "exact"
    tag_format = "{name}/v{version}"
    max_attempts = 3
"""

from __future__ import annotations

import difflib
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError


class CvmConfig(BaseModel):
    """Validated cvm settings.

    Attributes:
        staging_dir: Directory (relative to the root) holding change files.
        prerelease_file: File (relative to the root) holding prerelease state.
        propagation: How a dependency bump propagates to its dependents:
            "patch" always applies a patch bump, "inherit" applies the
            strongest bump among the changed dependencies.
        constraint: Requirement rewrite style, "preserve" or "exact".
        tag_format: Tag name for multi-package workspaces.
        single_tag_format: Tag name for single-package workspaces.
        create_tags: Create a tag for every newly published package.
        create_releases: Create a release for every created tag.
        changelog: Maintain per-package CHANGELOG.md files.
        max_attempts: Publish attempts per package for transient failures.
        backoff_base: First retry delay in seconds; doubles per attempt.
        timeout: Per-call timeout in seconds for registry operations.
        registry_url: Override the default registry base URL.
        pr_branch: Branch used by ``cvm version --pr``.
        pr_labels: Labels applied to the version pull request.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    staging_dir: str = ".changes"
    prerelease_file: str = ".cvm-prerelease.toml"
    propagation: Literal["patch", "inherit"] = "patch"
    constraint: Literal["preserve", "exact"] = "preserve"
    tag_format: str = "{name}/v{version}"
    single_tag_format: str = "v{version}"
    create_tags: bool = True
    create_releases: bool = True
    changelog: bool = True
    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base: float = Field(default=1.0, ge=0)
    timeout: float = Field(default=60.0, gt=0)
    registry_url: str | None = None
    pr_branch: str = "cvm/version-packages"
    pr_labels: list[str] = Field(default_factory=lambda: ["release"])

    def tag_for(self, name: str, version: str, *, single: bool) -> str:
        """Render the tag name for a published package."""
        fmt = self.single_tag_format if single else self.tag_format
        return fmt.format(name=name, version=version)


def _suggest_key(unknown: str) -> str | None:
    matches = difflib.get_close_matches(unknown, list(CvmConfig.model_fields), n=1)
    return matches[0] if matches else None


def parse_config(table: Mapping[str, Any]) -> CvmConfig:
    """Validate a raw settings table.

    Raises:
        ConfigError: On unknown keys (with a "did you mean" hint) or
            invalid values.
    """
    raw = dict(table)
    for key in raw:
        if key not in CvmConfig.model_fields:
            suggestion = _suggest_key(key)
            raise ConfigError(
                f"Unknown cvm setting {key!r}",
                hint=f"Did you mean {suggestion!r}?" if suggestion else "",
            )
    try:
        return CvmConfig.model_validate(raw)
    except ValidationError as exc:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigError(f"Invalid cvm settings: {errors}") from exc
