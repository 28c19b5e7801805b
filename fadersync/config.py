"""
Configuration snapshot for fadersync.

Turns an already-loaded configuration mapping into the canonical snapshot
the engine consumes, and fans reloads out to subscribers. Reading and
watching the file itself is left to the caller.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import voluptuous as vol

from .errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Mapping

_LOGGER = logging.getLogger(__name__)

CONF_SLIDER_MAPPING = "slider_mapping"
CONF_COMMANDS = "commands"
CONF_INVERT_SLIDERS = "invert_sliders"
CONF_SHELL = "shell"
CONF_ARGS = "args"

_CONTROL_INDEX = vol.All(vol.Coerce(int), vol.Range(min=0))

SLIDER_MAPPING_SCHEMA = vol.Schema({_CONTROL_INDEX: vol.Any(None, str, [str])})

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_SLIDER_MAPPING, default=dict): vol.Any(
            None, SLIDER_MAPPING_SCHEMA
        ),
        vol.Optional(CONF_COMMANDS, default=dict): vol.Any(None, dict),
        vol.Optional(CONF_INVERT_SLIDERS, default=False): bool,
    },
    # Connection and lighting keys belong to other collaborators
    extra=vol.ALLOW_EXTRA,
)

COMMAND_SCHEMA = vol.Schema(
    vol.Any(
        str,
        [str],
        {
            vol.Optional(CONF_SHELL, default=False): bool,
            vol.Optional(CONF_ARGS, default=list): vol.Any(str, [str]),
        },
    )
)


@dataclass(frozen=True)
class CommandSpec:
    """A command to run for one button index."""

    args: tuple[str, ...]
    shell: bool = False


class ControlMapping:
    """Read-only mapping of control index to the target names it drives."""

    def __init__(self, entries: Mapping[int, Iterable[str]] | None = None) -> None:
        """Initialize from index -> names; duplicate names collapse."""
        self._entries: dict[int, tuple[str, ...]] = {}
        for index in sorted(entries or {}):
            names = (n.strip() for n in entries[index])
            self._entries[index] = tuple(dict.fromkeys(n for n in names if n))

    def targets_for(self, index: int) -> tuple[str, ...]:
        """Return the names mapped to ``index`` (empty if unmapped)."""
        return self._entries.get(index, ())

    def items(self) -> Iterator[tuple[int, tuple[str, ...]]]:
        """Iterate over (index, names) in index order."""
        return iter(self._entries.items())

    def names(self) -> set[str]:
        """Return every target name in the mapping."""
        return {name for names in self._entries.values() for name in names}

    def __contains__(self, index: object) -> bool:
        """Return True if ``index`` is mapped."""
        return index in self._entries

    def __len__(self) -> int:
        """Return the number of mapped controls."""
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        """Compare mappings by content."""
        if not isinstance(other, ControlMapping):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self) -> int:
        """Hash by content."""
        return hash(tuple(self._entries.items()))

    def __repr__(self) -> str:
        """Return a debug representation."""
        return f"ControlMapping({self._entries!r})"


def parse_command(value: Any) -> CommandSpec | None:
    """
    Build a CommandSpec from one raw command entry.

    A string is a shell line, a list is a literal argv, and a mapping may set
    ``shell`` and ``args`` explicitly. Returns None when no argument is left
    after trimming. Raises voluptuous.Invalid for malformed entries.
    """
    value = COMMAND_SCHEMA(value)
    if isinstance(value, str):
        args, shell = [value], True
    elif isinstance(value, list):
        args, shell = value, False
    else:
        raw_args = value[CONF_ARGS]
        args = [raw_args] if isinstance(raw_args, str) else raw_args
        shell = value[CONF_SHELL]
    trimmed = tuple(arg.strip() for arg in args if arg.strip())
    if not trimmed:
        return None
    return CommandSpec(trimmed, shell=shell)


def _parse_commands(raw: Mapping[Any, Any]) -> dict[int, CommandSpec]:
    commands: dict[int, CommandSpec] = {}
    for key, value in raw.items():
        try:
            index = _CONTROL_INDEX(str(key).strip())
        except vol.Invalid:
            _LOGGER.warning("Ignoring command entry with non-numeric key %r", key)
            continue
        try:
            spec = parse_command(value)
        except vol.Invalid as err:
            _LOGGER.warning("Ignoring command entry %d: %s", index, err)
            continue
        if spec is not None:
            commands[index] = spec
    return commands


@dataclass(frozen=True)
class ConfigSnapshot:
    """Validated configuration consumed by the engine."""

    slider_mapping: ControlMapping = field(default_factory=ControlMapping)
    commands: Mapping[int, CommandSpec] = field(default_factory=dict)
    invert_sliders: bool = False

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> ConfigSnapshot:
        """Validate a raw configuration mapping and build a snapshot."""
        try:
            data = CONFIG_SCHEMA(dict(raw))
        except vol.Invalid as err:
            msg = f"Invalid configuration: {err}"
            raise ConfigError(msg) from err

        mapping: dict[int, list[str]] = {}
        for index, names in (data[CONF_SLIDER_MAPPING] or {}).items():
            if names is None:
                continue
            mapping[index] = [names] if isinstance(names, str) else names

        snapshot = cls(
            slider_mapping=ControlMapping(mapping),
            commands=_parse_commands(data[CONF_COMMANDS] or {}),
            invert_sliders=data[CONF_INVERT_SLIDERS],
        )
        _LOGGER.debug(
            "Loaded config: %d mapped controls, %d commands, invert_sliders=%s",
            len(snapshot.slider_mapping),
            len(snapshot.commands),
            snapshot.invert_sliders,
        )
        return snapshot


class ConfigNotifier:
    """Holds the current snapshot and notifies subscribers on reload."""

    def __init__(self, snapshot: ConfigSnapshot | None = None) -> None:
        """Initialize with an optional initial snapshot."""
        self._snapshot = snapshot or ConfigSnapshot()
        self._listeners: list[Callable[[ConfigSnapshot], None]] = []

    @property
    def snapshot(self) -> ConfigSnapshot:
        """Return the current snapshot."""
        return self._snapshot

    def subscribe(
        self, cb: Callable[[ConfigSnapshot], None]
    ) -> Callable[[], None]:
        """Register a reload callback; returns an unsubscribe."""
        self._listeners.append(cb)

        def _unsub() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(cb)

        return _unsub

    def publish(self, snapshot: ConfigSnapshot) -> None:
        """Install a new snapshot and notify every subscriber."""
        self._snapshot = snapshot
        _LOGGER.debug(
            "Notifying %d consumers about config reload", len(self._listeners)
        )
        for cb in list(self._listeners):
            try:
                cb(snapshot)
            except Exception:
                _LOGGER.exception("Error in config reload listener")
