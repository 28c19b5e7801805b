"""
Windows Core Audio (WASAPI) backend.

Sessions come from pycaw. A comtypes pointer is released when its last
Python reference goes away, so each target keeps the only references to its
interfaces and drops them in ``_release_native``.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING, Any

from fadersync.const import (
    MASTER_SESSION_KEY,
    SYSTEM_SESSION_KEY,
    SYSTEM_SESSION_PID,
    WINDOWS_EXECUTABLE_SUFFIX,
)
from fadersync.errors import NativeAudioError, NeedsRefreshError, VolumeWriteError
from fadersync.models import TargetKind, VolumeTarget

from . import SessionEnumerator, native_call, process_name

if TYPE_CHECKING:
    from collections.abc import Callable
    from contextlib import AbstractContextManager

_LOGGER = logging.getLogger(__name__)

# AudioSessionState values from audiosessiontypes.h
AUDIO_SESSION_STATE_EXPIRED = 2


def _com_call(
    action: str, error: type[NativeAudioError] = NativeAudioError
) -> AbstractContextManager[None]:
    """Translate COM failures raised inside the block."""
    from comtypes import COMError  # noqa: PLC0415

    return native_call(action, error, catch=(COMError, OSError))


class SessionHandle:
    """Owns the native interfaces of one audio session."""

    def __init__(self, session: Any) -> None:
        """Take the control and volume interfaces from a pycaw session."""
        self.pid: int = session.ProcessId
        self.control: Any = session
        self.volume: Any = session.SimpleAudioVolume

    def release(self) -> None:
        """Drop the interface references."""
        self.control = None
        self.volume = None


class WasapiSession(VolumeTarget):
    """A per-process (or system sounds) audio session."""

    def __init__(
        self,
        handle: SessionHandle,
        key: str,
        kind: TargetKind,
        description: str,
    ) -> None:
        """Initialize from an owned session handle."""
        super().__init__(key, kind, description)
        self.pid = handle.pid
        self._handle = handle
        self.get_volume()

    @classmethod
    def from_native(cls, session: Any) -> WasapiSession:
        """
        Build a target for a pycaw session.

        Raises NoSuchProcessError, after releasing the handle, when the
        owning process already exited.
        """
        with _com_call("open audio session"):
            handle = SessionHandle(session)
        if handle.pid == SYSTEM_SESSION_PID:
            return cls(
                handle, SYSTEM_SESSION_KEY, TargetKind.SYSTEM_SOUNDS, "system sounds"
            )
        try:
            name = process_name(handle.pid)
        except Exception:
            handle.release()
            raise
        return cls(
            handle,
            name.lower(),
            TargetKind.PROCESS,
            f"{name} (pid {handle.pid})",
        )

    def _read_volume(self) -> float:
        with _com_call("get session volume"):
            return float(self._handle.volume.GetMasterVolume())

    def _write_volume(self, level: float) -> None:
        with _com_call("set session volume", VolumeWriteError):
            self._handle.volume.SetMasterVolume(level, None)

    def _verify_after_write(self) -> None:
        # Sessions can expire between enumeration and the write
        with _com_call("get session state", VolumeWriteError):
            state = self._handle.control.State
        if state == AUDIO_SESSION_STATE_EXPIRED:
            self._logger.warning("Audio session expired, triggering session refresh")
            self.mark_uncontrollable()
            msg = f"{self.description} expired"
            raise NeedsRefreshError(msg)
        super()._verify_after_write()

    def _release_native(self) -> None:
        self._handle.release()


class EndpointSession(VolumeTarget):
    """The default output device's master volume."""

    def __init__(self, endpoint_volume: Any, key: str = MASTER_SESSION_KEY) -> None:
        """Initialize from an IAudioEndpointVolume interface."""
        super().__init__(key, TargetKind.DEFAULT_OUTPUT, key)
        self._endpoint_volume = endpoint_volume
        self.get_volume()

    def _check_writable(self) -> None:
        if not self._controllable:
            self._logger.warning(
                "Session expired because default device has changed, "
                "triggering session refresh"
            )
        super()._check_writable()

    def _read_volume(self) -> float:
        with _com_call("get master volume"):
            return float(self._endpoint_volume.GetMasterVolumeLevelScalar())

    def _write_volume(self, level: float) -> None:
        with _com_call("set master volume", VolumeWriteError):
            self._endpoint_volume.SetMasterVolumeLevelScalar(level, None)

    def _release_native(self) -> None:
        self._endpoint_volume = None


def _default_device_watcher(callback: Callable[[], None]) -> Any:
    """Return an IMMNotificationClient that calls back on default changes."""
    from pycaw.callbacks import MMNotificationClient  # noqa: PLC0415

    class _DefaultDeviceWatcher(MMNotificationClient):
        def on_default_device_changed(self, *args: Any) -> None:
            _LOGGER.debug("Default audio device changed: %s", args)
            callback()

    return _DefaultDeviceWatcher()


class WindowsSessionEnumerator(SessionEnumerator):
    """Enumerate WASAPI sessions through pycaw."""

    executable_suffix = WINDOWS_EXECUTABLE_SUFFIX

    def __init__(self, *, watch_default_device: bool = True) -> None:
        """Initialize and subscribe to default device changes."""
        super().__init__()
        self._device_enumerator: Any = None
        self._watcher: Any = None
        if watch_default_device:
            self._register_watcher()

    def _register_watcher(self) -> None:
        from pycaw.pycaw import AudioUtilities  # noqa: PLC0415

        try:
            with _com_call("register device notifications"):
                self._device_enumerator = AudioUtilities.GetDeviceEnumerator()
                self._watcher = _default_device_watcher(self.mark_default_outputs_stale)
                self._device_enumerator.RegisterEndpointNotificationCallback(
                    self._watcher
                )
        except NativeAudioError:
            # Staleness is still caught by failed writes, just later
            _LOGGER.exception("Failed to subscribe to default device changes")
            self._device_enumerator = None
            self._watcher = None

    async def _collect_sessions(self) -> list[Callable[[], VolumeTarget]]:
        from pycaw.pycaw import AudioUtilities  # noqa: PLC0415

        with _com_call("get default output device"):
            speakers = AudioUtilities.GetSpeakers()
            endpoint_volume = speakers.EndpointVolume
        with _com_call("enumerate audio sessions"):
            sessions = AudioUtilities.GetAllSessions()

        factories: list[Callable[[], VolumeTarget]] = [
            partial(EndpointSession, endpoint_volume)
        ]
        factories.extend(partial(WasapiSession.from_native, s) for s in sessions)
        return factories

    def close(self) -> None:
        """Unsubscribe from device notifications."""
        if self._device_enumerator is not None and self._watcher is not None:
            try:
                with _com_call("unregister device notifications"):
                    self._device_enumerator.UnregisterEndpointNotificationCallback(
                        self._watcher
                    )
            except NativeAudioError:
                _LOGGER.exception("Failed to unsubscribe from device notifications")
        self._device_enumerator = None
        self._watcher = None
        super().close()
