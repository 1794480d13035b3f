"""Version parsing and bumping utilities.

Versions are handled internally in canonical semver form
(``1.2.3``, ``1.2.3-canary.4``). Incomplete versions are padded
(``"1.2"`` → ``"1.2.0"``). Python manifests store PEP 440 versions, so
:func:`to_pep440` / :func:`from_pep440` translate at the manifest boundary.
"""

from __future__ import annotations

import re

import semver
from packaging.version import InvalidVersion, Version

from .errors import VersionFormatError
from .models import Bump

# A channel becomes the first prerelease identifier, the counter the second.
_CHANNEL_RE = re.compile(r"^(?!\d+$)[0-9A-Za-z-]+$")

_PEP440_SUFFIXES = {
    "alpha": "a",
    "a": "a",
    "beta": "b",
    "b": "b",
    "rc": "rc",
    "c": "rc",
    "pre": "rc",
    "preview": "rc",
    "dev": ".dev",
}
_PEP440_LABELS = {"a": "alpha", "b": "beta", "rc": "rc"}


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3-rc.1+build.5" → unchanged

    Raises:
        ValueError: If the string is not a (possibly incomplete) semver.
    """
    return semver.Version.parse(version_str.strip(), optional_minor_and_patch=True)


def is_valid_channel(channel: str) -> bool:
    """Whether ``channel`` can be used as a prerelease channel name."""
    return bool(_CHANNEL_RE.match(channel))


def split_prerelease(prerelease: str) -> tuple[str, int]:
    """Split a prerelease string into channel label and counter.

    Examples:
        "canary.3" → ("canary", 3)
        "beta" → ("beta", 0)
    """
    label, _, number = prerelease.rpartition(".")
    if label and number.isdigit():
        return label, int(number)
    return prerelease, 0


def _covers(version: semver.Version, bump: Bump) -> bool:
    """Whether a prerelease's base version already includes ``bump``.

    ``1.1.0-canary.1`` was cut for a minor bump (patch is zero), so
    releasing a minor or patch change off it needs no further increment.
    """
    if bump is Bump.MAJOR:
        return version.minor == 0 and version.patch == 0
    if bump is Bump.MINOR:
        return version.patch == 0
    return True


def _bump_stable(version: semver.Version, bump: Bump) -> semver.Version:
    if bump is Bump.MAJOR:
        return version.bump_major()
    if bump is Bump.MINOR:
        return version.bump_minor()
    return version.bump_patch()


def bump_version(version_str: str, bump: Bump) -> str:
    """Apply a stable bump and return the new version string.

    A prerelease is released onto its own base version when that base
    already covers the requested severity; otherwise the bump is applied
    on top of the base.

    Examples:
        ("1.2.3", MINOR) → "1.3.0"
        ("1.1.0-canary.2", MINOR) → "1.1.0"
        ("1.1.0-canary.2", MAJOR) → "2.0.0"
    """
    version = parse_version(version_str)
    if bump is Bump.NONE:
        return str(version)
    if version.prerelease and _covers(version, bump):
        return str(version.replace(prerelease=None, build=None))
    return str(_bump_stable(version, bump))


def bump_patch(version_str: str) -> str:
    """Increment the patch version and return as a string."""
    return bump_version(version_str, Bump.PATCH)


def prerelease_version(version_str: str, bump: Bump, channel: str) -> str:
    """Compute the next prerelease on ``channel`` for a requested bump.

    Examples:
        ("1.0.0", MINOR, "canary") → "1.1.0-canary.1"
        ("1.1.0-canary.1", MINOR, "canary") → "1.1.0-canary.2"
        ("1.1.0-canary.1", MAJOR, "canary") → "2.0.0-canary.1"
        ("1.1.0-alpha.4", PATCH, "beta") → "1.1.0-beta.1"
    """
    version = parse_version(version_str)
    bump = max(bump, Bump.PATCH)
    if version.prerelease:
        base = version.replace(prerelease=None, build=None)
        if _covers(version, bump):
            label, number = split_prerelease(version.prerelease)
            if label == channel:
                return str(base.replace(prerelease=f"{channel}.{number + 1}"))
            return str(base.replace(prerelease=f"{channel}.1"))
        target = _bump_stable(base, bump)
    else:
        target = _bump_stable(version, bump)
    return str(target.replace(prerelease=f"{channel}.1"))


def to_pep440(version_str: str) -> str:
    """Render a semver version in PEP 440 form.

    Examples:
        "1.2.3" → "1.2.3"
        "1.1.0-rc.2" → "1.1.0rc2"
        "1.1.0-dev.1" → "1.1.0.dev1"

    Raises:
        VersionFormatError: If the prerelease channel has no PEP 440 spelling.
    """
    version = parse_version(version_str)
    core = f"{version.major}.{version.minor}.{version.patch}"
    if not version.prerelease:
        return core
    label, number = split_prerelease(version.prerelease)
    suffix = _PEP440_SUFFIXES.get(label.lower())
    if suffix is None:
        raise VersionFormatError(
            f"Version {version_str} cannot be expressed in PEP 440",
            version=version_str,
            hint="Python packages support the alpha, beta, rc and dev channels.",
        )
    return f"{core}{suffix}{number}"


def from_pep440(version_str: str) -> str:
    """Convert a PEP 440 version to canonical semver form.

    Examples:
        "1.2" → "1.2.0"
        "1.1.0rc2" → "1.1.0-rc.2"
        "2.0.0a1" → "2.0.0-alpha.1"

    Raises:
        ValueError: For versions semver cannot represent (epochs, post
            releases, local segments, more than three release components).
    """
    try:
        parsed = Version(version_str)
    except InvalidVersion as exc:
        raise ValueError(f"invalid version {version_str!r}") from exc
    if parsed.epoch or parsed.post is not None or parsed.local or len(parsed.release) > 3:
        raise ValueError(f"version {version_str!r} has no semver equivalent")

    release = list(parsed.release) + [0] * (3 - len(parsed.release))
    core = ".".join(str(part) for part in release)
    if parsed.pre is not None:
        letter, number = parsed.pre
        return f"{core}-{_PEP440_LABELS[letter]}.{number}"
    if parsed.dev is not None:
        return f"{core}-dev.{parsed.dev}"
    return core
