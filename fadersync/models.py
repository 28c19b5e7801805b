"""Volume target models for fadersync."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from .const import WINDOWS_EXECUTABLE_SUFFIX
from .errors import (
    NativeAudioError,
    NeedsRefreshError,
    UnsupportedError,
    VolumeWriteError,
)

_LOGGER = logging.getLogger(__name__)


class TargetKind(Enum):
    """What a volume target controls."""

    PROCESS = "process"
    DEFAULT_OUTPUT = "default_output"
    SYSTEM_SOUNDS = "system_sounds"


class VolumeTarget(ABC):
    """
    Represents and owns a single controllable volume point.

    Subclasses hold the native handle and implement the ``_read_volume``,
    ``_write_volume`` and ``_release_native`` hooks. The handle is released
    exactly once, through ``release()``.
    """

    def __init__(
        self,
        key: str,
        kind: TargetKind,
        description: str | None = None,
    ) -> None:
        """Initialize a target identified by its lookup key."""
        self.key = key
        self.kind = kind
        self.description = description or key
        self._volume: float = 0.0  # last known level
        self._controllable = True
        self._released = False
        self._logger = _LOGGER.getChild(key.removesuffix(WINDOWS_EXECUTABLE_SUFFIX))

    @property
    def controllable(self) -> bool:
        """Return True while the target can accept writes."""
        return self._controllable and not self._released

    @property
    def released(self) -> bool:
        """Return True once the native handle has been released."""
        return self._released

    def mark_uncontrollable(self) -> None:
        """Flag the target as stale; this never reverts."""
        if self._controllable:
            self._controllable = False
            self._logger.debug("Marked %s as uncontrollable", self.description)

    def get_volume(self) -> float:
        """Return the current level, falling back to the last known value."""
        if self._released:
            return self._volume
        try:
            self._volume = self._read_volume()
        except NativeAudioError as exc:
            self._logger.warning("Failed to get session volume: %s", exc)
        return self._volume

    def set_volume(self, value: float) -> None:
        """
        Set the level (0.0..1.0) on the native session.

        Raises:
            UnsupportedError: the target cannot accept writes.
            NeedsRefreshError: the cached session view is stale.
            VolumeWriteError: the native call failed.

        """
        if self._released:
            msg = f"{self.description} has been released"
            raise UnsupportedError(msg)
        self._check_writable()
        level = max(0.0, min(float(value), 1.0))
        self._write_volume(level)
        self._volume = level
        self._verify_after_write()
        self._logger.debug("Adjusting session volume to %.2f", level)

    def release(self) -> None:
        """Release the native handle; later calls are no-ops."""
        if self._released:
            return
        self._released = True
        self._logger.debug("Releasing audio session")
        try:
            self._release_native()
        except NativeAudioError:
            self._logger.exception("Failed to release %s", self.description)

    def _check_writable(self) -> None:
        """Refuse a write before touching the native handle."""
        if not self._controllable:
            msg = f"{self.description} is stale"
            raise NeedsRefreshError(msg)

    def _verify_after_write(self) -> None:
        """Re-check staleness once a write went through."""
        if not self._controllable:
            msg = f"{self.description} went stale during write"
            raise NeedsRefreshError(msg)

    @abstractmethod
    def _read_volume(self) -> float:
        """Read the native level."""

    @abstractmethod
    def _write_volume(self, level: float) -> None:
        """Write the native level."""

    @abstractmethod
    def _release_native(self) -> None:
        """Drop the native handle."""

    def to_dict(self) -> dict[str, Any]:
        """Return a serializable view of the target, using the last known level."""
        return {
            "key": self.key,
            "kind": self.kind.value,
            "description": self.description,
            "volume": round(self._volume, 4),
            "controllable": self.controllable,
        }

    def describe(self) -> str:
        """Return a readable description with the current level."""
        return f"{self.description} (volume: {self.get_volume():.2f})"

    def __str__(self) -> str:
        """Return the readable description."""
        return self.describe()

    def __repr__(self) -> str:
        """Return a debug representation."""
        return f"<{type(self).__name__} key={self.key!r} kind={self.kind.value}>"


class UnboundTarget(VolumeTarget):
    """A pseudo-target the platform cannot currently expose."""

    def __init__(
        self,
        key: str,
        kind: TargetKind,
        description: str | None = None,
    ) -> None:
        """Initialize a target with no native handle."""
        super().__init__(key, kind, description)
        self._controllable = False

    def _check_writable(self) -> None:
        msg = f"{self.description} is not available on this platform"
        raise UnsupportedError(msg)

    def _read_volume(self) -> float:
        return self._volume

    def _write_volume(self, level: float) -> None:
        msg = f"{self.description} is not available on this platform"
        raise UnsupportedError(msg)

    def _release_native(self) -> None:
        return


class SessionGroup(VolumeTarget):
    """
    Several native sessions sharing one key, driven in unison.

    Browsers and chat clients open more than one session per executable, and
    only some of them are playing at any time. The group owns every member,
    writes each of them and releases them together.
    """

    def __init__(self, first: VolumeTarget) -> None:
        """Initialize a group holding ``first``."""
        super().__init__(first.key, first.kind)
        self.members: list[VolumeTarget] = []
        self.add(first)

    def add(self, target: VolumeTarget) -> None:
        """Take ownership of another session with the same key."""
        self.members.append(target)
        self.description = f"{self.key} ({len(self.members)} sessions)"
        if len(self.members) == 1:
            self._volume = target.get_volume()

    def _read_volume(self) -> float:
        live = [m for m in self.members if m.controllable] or self.members
        return live[0].get_volume()

    def _write_volume(self, level: float) -> None:
        failures: list[Exception] = []
        for member in self.members:
            try:
                member.set_volume(level)
            except NeedsRefreshError as exc:
                # Picked up by _verify_after_write once every member is written
                self._logger.debug("Member session went stale: %s", exc)
            except (NativeAudioError, UnsupportedError) as exc:
                self._logger.warning("Failed to set %s: %s", member.description, exc)
                failures.append(exc)
        if failures and len(failures) == len(self.members):
            msg = f"every session of {self.key} refused the write: {failures[0]}"
            raise VolumeWriteError(msg)

    def _verify_after_write(self) -> None:
        if any(not member.controllable for member in self.members):
            self.mark_uncontrollable()
            msg = f"a session of {self.key} expired"
            raise NeedsRefreshError(msg)
        super()._verify_after_write()

    def _release_native(self) -> None:
        for member in self.members:
            member.release()

    def to_dict(self) -> dict[str, Any]:
        """Return the group view, listing its member sessions."""
        data = super().to_dict()
        data["sessions"] = [member.description for member in self.members]
        return data
