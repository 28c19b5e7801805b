"""
PulseAudio backend.

Process sessions are sink inputs, the default output is the server's default
sink. PulseAudio has no system-sounds group, so ``system`` stays unbound.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING, Any

from fadersync.const import MASTER_SESSION_KEY
from fadersync.errors import (
    NativeAudioError,
    NeedsRefreshError,
    NoSuchProcessError,
    VolumeWriteError,
)
from fadersync.models import TargetKind, VolumeTarget

from . import SessionEnumerator, native_call, process_name

if TYPE_CHECKING:
    from collections.abc import Callable
    from contextlib import AbstractContextManager

_LOGGER = logging.getLogger(__name__)

PROP_PROCESS_ID = "application.process.id"


def _pulse_call(
    action: str, error: type[NativeAudioError] = NativeAudioError
) -> AbstractContextManager[None]:
    """Translate pulsectl failures raised inside the block."""
    from pulsectl import PulseError  # noqa: PLC0415

    return native_call(action, error, catch=(PulseError, OSError))


class SinkInputSession(VolumeTarget):
    """One application stream."""

    def __init__(self, pulse: Any, sink_input: Any, name: str, pid: int) -> None:
        """Initialize from a sink input owned by this target."""
        super().__init__(name.lower(), TargetKind.PROCESS, f"{name} (pid {pid})")
        self.pid = pid
        self._pulse = pulse
        self._sink_input = sink_input
        self._index: int = sink_input.index
        self._volume = float(sink_input.volume.value_flat)

    @classmethod
    def from_native(cls, pulse: Any, sink_input: Any) -> SinkInputSession:
        """Build a target for a sink input, resolving its process name."""
        raw_pid = sink_input.proplist.get(PROP_PROCESS_ID)
        try:
            pid = int(raw_pid)
        except (TypeError, ValueError):
            # Streams without a client process cannot be matched by name
            raise NoSuchProcessError(-1) from None
        return cls(pulse, sink_input, process_name(pid), pid)

    def _read_volume(self) -> float:
        with _pulse_call("get sink input volume"):
            return float(self._pulse.sink_input_info(self._index).volume.value_flat)

    def _write_volume(self, level: float) -> None:
        with _pulse_call("set sink input volume", VolumeWriteError):
            self._pulse.volume_set_all_chans(self._sink_input, level)

    def _verify_after_write(self) -> None:
        with _pulse_call("list sink inputs", VolumeWriteError):
            alive = any(
                si.index == self._index for si in self._pulse.sink_input_list()
            )
        if not alive:
            self._logger.warning("Audio session expired, triggering session refresh")
            self.mark_uncontrollable()
            msg = f"{self.description} expired"
            raise NeedsRefreshError(msg)
        super()._verify_after_write()

    def _release_native(self) -> None:
        self._sink_input = None


class SinkSession(VolumeTarget):
    """The default sink's volume."""

    def __init__(self, pulse: Any, sink: Any, key: str = MASTER_SESSION_KEY) -> None:
        """Initialize from the default sink."""
        super().__init__(key, TargetKind.DEFAULT_OUTPUT, key)
        self._pulse = pulse
        self._sink = sink
        self._sink_name: str = sink.name
        self._volume = float(sink.volume.value_flat)

    def _read_volume(self) -> float:
        with _pulse_call("get sink volume"):
            sink = self._pulse.get_sink_by_name(self._sink_name)
        return float(sink.volume.value_flat)

    def _write_volume(self, level: float) -> None:
        with _pulse_call("set sink volume", VolumeWriteError):
            self._pulse.volume_set_all_chans(self._sink, level)

    def _default_sink_moved(self) -> bool:
        """Mark the target stale if the server default is another sink."""
        with _pulse_call("get server info", VolumeWriteError):
            default_sink = self._pulse.server_info().default_sink_name
        if default_sink == self._sink_name:
            return False
        self._logger.warning(
            "Default sink changed from %s to %s, triggering session refresh",
            self._sink_name,
            default_sink,
        )
        self.mark_uncontrollable()
        return True

    def _check_writable(self) -> None:
        super()._check_writable()
        # Default sink moves are not pushed to this client; check before writing
        if self._default_sink_moved():
            msg = f"{self.description} is no longer the default sink"
            raise NeedsRefreshError(msg)

    def _verify_after_write(self) -> None:
        self._default_sink_moved()
        super()._verify_after_write()

    def _release_native(self) -> None:
        self._sink = None


class PulseSessionEnumerator(SessionEnumerator):
    """Enumerate PulseAudio streams through pulsectl."""

    def __init__(self, pulse: Any = None, client_name: str = "fadersync") -> None:
        """Initialize with an existing client or open a new one."""
        super().__init__()
        self._owns_client = pulse is None
        if pulse is None:
            import pulsectl  # noqa: PLC0415

            pulse = pulsectl.Pulse(client_name)
        self._pulse = pulse

    async def _collect_sessions(self) -> list[Callable[[], VolumeTarget]]:
        with _pulse_call("get default sink"):
            default_sink_name = self._pulse.server_info().default_sink_name
            sink = self._pulse.get_sink_by_name(default_sink_name)
        with _pulse_call("list sink inputs"):
            sink_inputs = self._pulse.sink_input_list()

        factories: list[Callable[[], VolumeTarget]] = [
            partial(SinkSession, self._pulse, sink)
        ]
        factories.extend(
            partial(SinkInputSession.from_native, self._pulse, si) for si in sink_inputs
        )
        return factories

    def close(self) -> None:
        """Close the client if this enumerator opened it."""
        if self._owns_client and self._pulse is not None:
            self._pulse.close()
            self._pulse = None
        super().close()
