"""
Platform audio backends.

Each backend provides a ``SessionEnumerator`` subclass that turns the native
session list into ``VolumeTarget`` objects. ``select_backend`` picks one for
the running platform; nothing else in the package looks at the platform.
"""

from __future__ import annotations

import contextlib
import logging
import sys
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import psutil

from fadersync.const import (
    IS_WINDOWS,
    MASTER_SESSION_KEY,
    SYSTEM_SESSION_KEY,
)
from fadersync.errors import (
    FaderSyncError,
    NativeAudioError,
    NoSuchProcessError,
    ScanFailedError,
    UnsupportedPlatformError,
)
from fadersync.models import SessionGroup, TargetKind, UnboundTarget, VolumeTarget

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

_LOGGER = logging.getLogger(__name__)

_PSEUDO_TARGETS = (
    (MASTER_SESSION_KEY, TargetKind.DEFAULT_OUTPUT, "master"),
    (SYSTEM_SESSION_KEY, TargetKind.SYSTEM_SOUNDS, "system sounds"),
)


@contextlib.contextmanager
def native_call(
    action: str,
    error: type[NativeAudioError] = NativeAudioError,
    *,
    catch: tuple[type[Exception], ...] = (OSError,),
) -> Iterator[None]:
    """
    Translate native library errors into ``error``.

    ``catch`` names the library's own exception types, such as comtypes
    ``COMError`` or pulsectl ``PulseError``. Anything else propagates.
    """
    try:
        yield
    except FaderSyncError:
        raise
    except catch as exc:
        msg = f"{action}: {exc}"
        raise error(msg) from exc


def process_name(pid: int) -> str:
    """Return the executable name for a process id."""
    try:
        return psutil.Process(pid).name()
    except psutil.NoSuchProcess:
        _LOGGER.debug("Process %d already exited, not creating audio session", pid)
        raise NoSuchProcessError(pid) from None


class SessionEnumerator(ABC):
    """Query the platform for the live set of volume targets."""

    # Suffix the platform appends to executable names, if any
    executable_suffix: str | None = None

    def __init__(self) -> None:
        """Initialize the enumerator."""
        self._default_outputs: list[VolumeTarget] = []

    async def scan(self) -> list[VolumeTarget]:
        """
        Enumerate every session and build its target.

        Sessions whose process vanished mid-scan are dropped, and sessions
        sharing a key are grouped into one target. Any other construction
        failure releases what was built and raises ScanFailedError. The
        pseudo-targets are always present.
        """
        targets: dict[str, VolumeTarget] = {}
        try:
            for build in await self._collect_sessions():
                try:
                    target = build()
                except NoSuchProcessError as exc:
                    _LOGGER.debug("Skipping audio session: %s", exc)
                    continue
                existing = targets.get(target.key)
                if existing is None:
                    targets[target.key] = target
                    continue
                if not isinstance(existing, SessionGroup):
                    existing = targets[target.key] = SessionGroup(existing)
                existing.add(target)
                _LOGGER.debug(
                    "Grouping %d audio sessions for %s",
                    len(existing.members),
                    target.key,
                )
        except Exception as exc:  # noqa: BLE001 - any failure aborts the whole scan
            for target in targets.values():
                target.release()
            msg = f"Session enumeration failed: {exc}"
            raise ScanFailedError(msg) from exc

        for key, kind, description in _PSEUDO_TARGETS:
            if key not in targets:
                targets[key] = UnboundTarget(key, kind, description)

        self._default_outputs = [
            t for t in targets.values() if t.kind is TargetKind.DEFAULT_OUTPUT
        ]
        _LOGGER.debug("Enumerated %d audio sessions", len(targets))
        return list(targets.values())

    def mark_default_outputs_stale(self) -> None:
        """Flag every default-output target from the latest scan as stale."""
        for target in list(self._default_outputs):
            target.mark_uncontrollable()

    def close(self) -> None:
        """Release backend-level resources."""
        self._default_outputs = []

    @abstractmethod
    async def _collect_sessions(self) -> list[Callable[[], VolumeTarget]]:
        """Return one constructor per native session."""


def select_backend() -> SessionEnumerator:
    """Return the session enumerator for the running platform."""
    if IS_WINDOWS:
        from .windows import WindowsSessionEnumerator  # noqa: PLC0415

        return WindowsSessionEnumerator()
    if sys.platform.startswith("linux"):
        from .pulse import PulseSessionEnumerator  # noqa: PLC0415

        return PulseSessionEnumerator()
    msg = f"No audio backend for platform {sys.platform}"
    raise UnsupportedPlatformError(msg)
