"""
Session registry for fadersync.

Caches the targets from one enumerator scan, keyed by session name:
- Rebuilds run under a single lock, so one scan serves every waiting caller
- A rebuild replaces the whole set; the prior targets are released only
  once the new set is in hand
- A failed scan keeps the previously installed set, and lookups keep using it
  for ``retry_interval`` seconds before the next rescan
"""

from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING

from .const import SCAN_RETRY_INTERVAL
from .errors import ScanFailedError

if TYPE_CHECKING:
    from .backends import SessionEnumerator
    from .models import VolumeTarget

_LOGGER = logging.getLogger(__name__)


class RegistryState(Enum):
    """Lifecycle of the cached session set."""

    EMPTY = "empty"
    FRESH = "fresh"
    REBUILD_IN_FLIGHT = "rebuild_in_flight"


class SessionRegistry:
    """Keyed, generation-counted view over enumerator output."""

    def __init__(
        self,
        enumerator: SessionEnumerator,
        *,
        retry_interval: float = SCAN_RETRY_INTERVAL,
    ) -> None:
        """Initialize an empty registry over an enumerator."""
        self._enumerator = enumerator
        self._retry_interval = retry_interval
        self._retry_at = 0.0
        self._targets: dict[str, VolumeTarget] = {}
        self._state = RegistryState.EMPTY
        self._generation = 0
        self._invalidations = 0
        self._lock = asyncio.Lock()
        # invalidate() may run on a native callback thread
        self._state_guard = threading.Lock()

    @property
    def state(self) -> RegistryState:
        """Return the current registry state."""
        return self._state

    @property
    def generation(self) -> int:
        """Return the number of installed rebuilds."""
        return self._generation

    @property
    def executable_suffix(self) -> str | None:
        """Return the platform's executable suffix, if any."""
        return self._enumerator.executable_suffix

    def targets(self) -> list[VolumeTarget]:
        """Return a snapshot of the installed targets."""
        return list(self._targets.values())

    def invalidate(self) -> None:
        """Mark the cached set stale; targets are released on the next rebuild."""
        with self._state_guard:
            self._invalidations += 1
            self._state = RegistryState.EMPTY
        _LOGGER.debug("Session registry invalidated (generation %d)", self._generation)

    async def resolve(self, key: str) -> VolumeTarget | None:
        """Return the target for ``key``, rebuilding first if the set is stale."""
        async with self._lock:
            if self._state is not RegistryState.FRESH and not self._backing_off():
                await self._rebuild()
            return self._targets.get(key)

    async def refresh(self) -> int:
        """Force a rebuild and return the resulting generation."""
        self.invalidate()
        async with self._lock:
            if self._state is not RegistryState.FRESH:
                await self._rebuild()
            return self._generation

    def _backing_off(self) -> bool:
        """Return True while a failed rescan is not due for a retry yet."""
        if not self._targets:
            return False
        return asyncio.get_running_loop().time() < self._retry_at

    async def _rebuild(self) -> None:
        """Scan and install a new set; caller holds the lock."""
        with self._state_guard:
            self._state = RegistryState.REBUILD_IN_FLIGHT
            epoch = self._invalidations

        try:
            fresh = await self._enumerator.scan()
        except ScanFailedError:
            with self._state_guard:
                self._state = RegistryState.EMPTY
            if self._generation == 0:
                raise
            self._retry_at = asyncio.get_running_loop().time() + self._retry_interval
            _LOGGER.warning(
                "Failed to refresh audio sessions; keeping %d sessions from "
                "generation %d for %.1fs",
                len(self._targets),
                self._generation,
                self._retry_interval,
                exc_info=True,
            )
            return

        stale, self._targets = self._targets, {}
        for target in stale.values():
            target.release()
        self._targets = {target.key: target for target in fresh}
        self._generation += 1

        with self._state_guard:
            # An invalidate() that landed mid-scan makes this set stale already
            if self._invalidations == epoch:
                self._state = RegistryState.FRESH
            else:
                self._state = RegistryState.EMPTY
        _LOGGER.info(
            "Refreshed audio sessions: generation %d, %d sessions",
            self._generation,
            len(self._targets),
        )

    async def close(self) -> None:
        """Release every target and the enumerator."""
        async with self._lock:
            stale, self._targets = self._targets, {}
            for target in stale.values():
                target.release()
            with self._state_guard:
                self._state = RegistryState.EMPTY
            self._enumerator.close()
