"""Dependency requirement parsing and rewriting.

Python manifests declare dependencies as PEP 508 strings
(``"core[extra]>=1.0; python_version >= '3.10'"``); Cargo manifests use
semver requirements (``"1.0"``, ``"^1.2"``, ``"=1.2.3"``). When an internal
dependency is bumped, its requirement in every dependent is rewritten so
that it accepts the new version.

Two constraint styles are supported:

- ``preserve`` (default): keep the declared operator when it is a single
  clause that accepts the new version; otherwise fall back to the
  format's minimum-version form (``>=`` for PEP 508, caret for Cargo).
- ``exact``: pin to the new version (``==`` / ``=``).
"""

from __future__ import annotations

import re

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from .errors import ManifestError

# Operators that still match the version they are written with.
_PEP508_KEEP = {">=", "==", "~=", "==="}

_CARGO_CLAUSE_RE = re.compile(r"^\s*(?P<op>\^|~|=|>=)?\s*(?P<version>\d[0-9A-Za-z.+-]*)\s*$")


def dep_canonical_name(dep_str: str) -> str:
    """Extract the canonical package name from a PEP 508 dependency string.

    Examples:
        "requests>=2.0" → "requests"
        "My_Package[extra]~=1.0" → "my-package"

    Raises:
        ManifestError: If the string is not a valid PEP 508 requirement.
    """
    try:
        return canonicalize_name(Requirement(dep_str).name)
    except InvalidRequirement as exc:
        raise ManifestError(f"Invalid dependency {dep_str!r}: {exc}") from exc


def pep508_specifier(dep_str: str) -> str | None:
    """Return the version specifier of a PEP 508 string, or None if absent."""
    spec = str(Requirement(dep_str).specifier)
    return spec or None


def update_pep508_requirement(dep_str: str, version: str, style: str = "preserve") -> str:
    """Rewrite a PEP 508 dependency string so it accepts ``version``.

    Dependencies declared without a specifier are returned unchanged in
    ``preserve`` style; direct URL references (``core @ file:../core``)
    are returned unchanged in either style.

    Examples:
        ("core>=1.0", "2.0.0") → "core>=2.0.0"
        ("core~=1.0", "2.0.0") → "core~=2.0.0"
        ("core>=1,<2", "2.0.0") → "core>=2.0.0"
        ("core", "2.0.0") → "core"
        ("core @ file:../core", "2.0.0") → "core @ file:../core"
    """
    req = Requirement(dep_str)
    if req.url:
        return dep_str
    if style == "exact":
        return _render_pep508(req, "==", version)
    specs = list(req.specifier)
    if not specs:
        return dep_str
    if len(specs) == 1 and specs[0].operator in _PEP508_KEEP:
        return _render_pep508(req, specs[0].operator, version)
    return _render_pep508(req, ">=", version)


def _render_pep508(req: Requirement, operator: str, version: str) -> str:
    extras = f"[{','.join(sorted(req.extras))}]" if req.extras else ""
    marker = f"; {req.marker}" if req.marker else ""
    return f"{req.name}{extras}{operator}{version}{marker}"


def update_cargo_requirement(requirement: str, version: str, style: str = "preserve") -> str:
    """Rewrite a Cargo version requirement so it accepts ``version``.

    Examples:
        ("1.0", "2.0.0") → "2.0.0"
        ("^1.2", "1.3.0") → "^1.3.0"
        ("=1.2.3", "1.2.4") → "=1.2.4"
        (">=1, <2", "2.0.0") → "2.0.0"
    """
    if style == "exact":
        return f"={version}"
    match = _CARGO_CLAUSE_RE.match(requirement)
    if match is None:
        return version
    return f"{match.group('op') or ''}{version}"
