"""Shared pytest fixtures for fadersync tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from fadersync.backends import SessionEnumerator
from fadersync.commands import CommandDispatcher
from fadersync.config import ControlMapping
from fadersync.models import TargetKind, VolumeTarget
from fadersync.registry import SessionRegistry
from fadersync.resolver import TargetResolver

if TYPE_CHECKING:
    from collections.abc import Callable


class FakeTarget(VolumeTarget):
    """In-memory target that records writes and releases."""

    def __init__(
        self,
        key: str,
        volume: float = 0.5,
        kind: TargetKind = TargetKind.PROCESS,
        *,
        fail_write: Exception | None = None,
    ) -> None:
        """Initialize with a starting level and an optional write failure."""
        super().__init__(key, kind)
        self._volume = volume
        self.level = volume
        self.writes: list[float] = []
        self.release_count = 0
        self.fail_write = fail_write

    def _read_volume(self) -> float:
        return self.level

    def _write_volume(self, level: float) -> None:
        if self.fail_write is not None:
            raise self.fail_write
        self.writes.append(level)
        self.level = level

    def _release_native(self) -> None:
        self.release_count += 1


class FakeEnumerator(SessionEnumerator):
    """Enumerator returning prepared targets, with scan counting."""

    executable_suffix: str | None = None

    def __init__(
        self,
        factory: Callable[[], list[VolumeTarget]] | None = None,
        *,
        suffix: str | None = None,
    ) -> None:
        """Initialize with a factory producing each scan's targets."""
        super().__init__()
        self.factory = factory or list
        self.executable_suffix = suffix
        self.scan_count = 0
        self.closed = False
        self.error: Exception | None = None
        # Set to hold scans until released by the test
        self.gate: asyncio.Event | None = None

    async def _collect_sessions(self) -> list[Callable[[], VolumeTarget]]:
        self.scan_count += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return [lambda t=t: t for t in self.factory()]

    def close(self) -> None:
        """Record the close."""
        self.closed = True
        super().close()


@pytest.fixture
def chrome() -> FakeTarget:
    """Create a running chrome session at 0.4."""
    return FakeTarget("chrome", 0.4)


@pytest.fixture
def enumerator(chrome: FakeTarget) -> FakeEnumerator:
    """Create an enumerator that always reports chrome."""
    return FakeEnumerator(lambda: [chrome])


@pytest.fixture
def registry(enumerator: FakeEnumerator) -> SessionRegistry:
    """Create a registry over the fake enumerator."""
    return SessionRegistry(enumerator)


@pytest.fixture
def resolver(registry: SessionRegistry) -> TargetResolver:
    """Create a resolver mapping control 0 to chrome."""
    return TargetResolver(registry, ControlMapping({0: ["chrome"]}))


@pytest.fixture
def dispatcher() -> CommandDispatcher:
    """Create a dispatcher with no commands, using the POSIX shell."""
    return CommandDispatcher(windows_shell=False)

