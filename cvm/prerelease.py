"""Persistent prerelease mode.

While a channel is active, changes staged with ``pre = true`` produce
prerelease versions on that channel (``1.1.0-canary.1``) instead of
stable ones. The state lives in ``.cvm-prerelease.toml`` at the
workspace root::

    channel = "canary"
    counter = 2

No file means inactive. ``counter`` counts prerelease applies made on
the channel; per-package prerelease numbers come from each package's
current version.
"""

from __future__ import annotations

from pathlib import Path

import tomlkit
from pydantic import ValidationError
from tomlkit.exceptions import ParseError

from .clients import write_atomic
from .errors import AlreadyActiveError, ConfigError, InvalidChannelError, NotActiveError
from .logging import get_logger
from .models import PrereleaseState
from .versions import is_valid_channel

logger = get_logger(__name__)

INACTIVE = PrereleaseState()


def load_state(path: Path) -> PrereleaseState:
    """Read the prerelease state; a missing file is the inactive state.

    Raises:
        ConfigError: If the file exists but cannot be parsed.
    """
    if not path.exists():
        return INACTIVE
    try:
        data = tomlkit.parse(path.read_text(encoding="utf-8")).unwrap()
        state = PrereleaseState.model_validate(data)
    except (ParseError, ValidationError) as exc:
        raise ConfigError(
            f"Corrupt prerelease state in {path.name}: {exc}",
            hint="Fix or delete the file and run 'cvm pre start' again.",
        ) from exc
    if state.channel is not None and not is_valid_channel(state.channel):
        raise InvalidChannelError(f"Invalid channel {state.channel!r} in {path.name}")
    return state


def save_state(path: Path, state: PrereleaseState) -> None:
    """Persist ``state`` atomically; the inactive state removes the file."""
    if not state.active:
        path.unlink(missing_ok=True)
        return
    doc = tomlkit.document()
    doc["channel"] = state.channel
    doc["counter"] = state.counter
    write_atomic(path, tomlkit.dumps(doc))


def start(state: PrereleaseState, channel: str) -> PrereleaseState:
    """Enter prerelease mode on ``channel``.

    Starting the channel that is already active is a no-op.

    Raises:
        InvalidChannelError: If ``channel`` is not a valid identifier.
        AlreadyActiveError: If a different channel is active.
    """
    if not is_valid_channel(channel):
        raise InvalidChannelError(
            f"Invalid prerelease channel {channel!r}",
            hint="Use letters, digits and hyphens, e.g. 'canary' or 'rc'.",
        )
    if state.active:
        if state.channel != channel:
            raise AlreadyActiveError(state.channel or "", channel)
        return state
    logger.info("prerelease_started", channel=channel)
    return PrereleaseState(channel=channel, counter=0)


def record_release(state: PrereleaseState) -> PrereleaseState:
    """Count one prerelease apply on the active channel.

    Raises:
        NotActiveError: If no channel is active.
    """
    if not state.active:
        raise NotActiveError("No prerelease channel is active")
    return state.model_copy(update={"counter": state.counter + 1})


def exit_prerelease(state: PrereleaseState) -> PrereleaseState:
    """Leave prerelease mode; leaving while inactive is a no-op."""
    if state.active:
        logger.info("prerelease_exited", channel=state.channel, counter=state.counter)
    return INACTIVE
