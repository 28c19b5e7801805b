"""Map configured target names onto registry sessions and drive their volume."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .config import ControlMapping
from .errors import FaderSyncError, NeedsRefreshError

if TYPE_CHECKING:
    from .config import ConfigSnapshot
    from .models import VolumeTarget
    from .registry import SessionRegistry

_LOGGER = logging.getLogger(__name__)


class TargetResolver:
    """Apply control positions to every target a control is mapped to."""

    def __init__(
        self,
        registry: SessionRegistry,
        mapping: ControlMapping | None = None,
    ) -> None:
        """Initialize with the registry and the current control mapping."""
        self._registry = registry
        self._mapping = mapping or ControlMapping()
        self._suffix = registry.executable_suffix
        self._lookup_keys: dict[str, tuple[str, ...]] = {}
        self._derive_lookup_keys()

    @property
    def registry(self) -> SessionRegistry:
        """Return the session registry."""
        return self._registry

    @property
    def mapping(self) -> ControlMapping:
        """Return the active control mapping."""
        return self._mapping

    def update_mapping(self, mapping: ControlMapping) -> None:
        """Swap the control mapping and re-derive the name cache."""
        self._mapping = mapping
        self._derive_lookup_keys()

    def on_config_reload(self, snapshot: ConfigSnapshot) -> None:
        """Reload-notification callback."""
        self.update_mapping(snapshot.slider_mapping)

    def _derive_lookup_keys(self) -> None:
        self._lookup_keys = {
            name: self.keys_for(name) for name in self._mapping.names()
        }

    def keys_for(self, name: str) -> tuple[str, ...]:
        """
        Return the registry keys a configured name may match, in order.

        Names are case-insensitive; on platforms with an executable suffix,
        both the suffixed and the bare form are tried.
        """
        key = name.strip().lower()
        if not self._suffix:
            return (key,)
        if key.endswith(self._suffix):
            return (key, key.removesuffix(self._suffix))
        return (key, key + self._suffix)

    async def resolve_name(self, name: str) -> VolumeTarget | None:
        """Return the target a configured name resolves to, if running."""
        keys = self._lookup_keys.get(name) or self.keys_for(name)
        for key in keys:
            target = await self._registry.resolve(key)
            if target is not None:
                return target
        return None

    async def read_volume(self, name: str) -> float | None:
        """Return the current volume behind a configured name, if running."""
        target = await self.resolve_name(name)
        if target is None:
            return None
        return target.get_volume()

    async def apply(self, control_index: int, value: float) -> None:
        """
        Set every target mapped to ``control_index`` to ``value``.

        A stale session view triggers one registry rebuild and one retry of
        the whole control; other failures skip just that target.
        """
        names = self._mapping.targets_for(control_index)
        if not names:
            _LOGGER.debug("No targets mapped to control %d", control_index)
            return
        level = max(0.0, min(float(value), 1.0))

        if not await self._apply_once(control_index, names, level):
            return
        _LOGGER.info("Refreshing audio sessions for control %d", control_index)
        self._registry.invalidate()
        if await self._apply_once(control_index, names, level):
            _LOGGER.warning(
                "Dropping volume update for control %d: sessions still stale "
                "after refresh",
                control_index,
            )

    async def _apply_once(
        self, control_index: int, names: tuple[str, ...], level: float
    ) -> bool:
        """Apply ``level`` to each name; return True if a refresh is needed."""
        needs_refresh = False
        for name in names:
            target = await self.resolve_name(name)
            if target is None:
                _LOGGER.debug(
                    "No audio session for %r (control %d)", name, control_index
                )
                continue
            try:
                target.set_volume(level)
            except NeedsRefreshError:
                # Keep going; the other targets are still valid this tick
                needs_refresh = True
            except FaderSyncError as exc:
                _LOGGER.warning(
                    "Failed to set volume for %s (control %d): %s",
                    target.description,
                    control_index,
                    exc,
                )
        return needs_refresh
