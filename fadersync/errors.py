"""Exception taxonomy for fadersync."""

from __future__ import annotations


class FaderSyncError(Exception):
    """Base class for all fadersync errors."""


class NoSuchProcessError(FaderSyncError):
    """The process owning an audio session exited during enumeration."""

    def __init__(self, pid: int) -> None:
        """Initialize with the vanished process id."""
        super().__init__(f"No such process: {pid}")
        self.pid = pid


class UnsupportedError(FaderSyncError):
    """The target cannot currently accept volume writes."""


class NativeAudioError(FaderSyncError):
    """A native audio call failed."""


class VolumeWriteError(NativeAudioError):
    """The native layer refused a volume write."""


class NeedsRefreshError(FaderSyncError):
    """The whole cached session view is stale, not just this write."""


class ScanFailedError(FaderSyncError):
    """A native session enumeration failed."""


class CommandLaunchFailedError(FaderSyncError):
    """A configured command could not be started."""


class UnsupportedPlatformError(FaderSyncError):
    """No audio backend exists for the running platform."""


class ConfigError(FaderSyncError):
    """A raw configuration mapping failed validation."""
