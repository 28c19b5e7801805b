"""The fadersync audio-session engine."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .backends import select_backend
from .commands import CommandDispatcher
from .config import ConfigNotifier, ConfigSnapshot
from .coordinator import ButtonPress, SessionCoordinator, SliderMove
from .registry import SessionRegistry
from .resolver import TargetResolver

if TYPE_CHECKING:
    from .backends import SessionEnumerator

__all__ = [
    "ButtonPress",
    "ConfigNotifier",
    "ConfigSnapshot",
    "SessionCoordinator",
    "SliderMove",
    "async_setup",
    "async_unload",
]

_LOGGER = logging.getLogger(__name__)


async def async_setup(
    config: ConfigSnapshot | ConfigNotifier,
    *,
    enumerator: SessionEnumerator | None = None,
    min_apply_interval: float = 0.0,
) -> SessionCoordinator:
    """
    Build and start the engine for a configuration.

    Passing a ConfigNotifier keeps the engine following its reloads. The
    platform backend is selected here unless an enumerator is given.
    """
    notifier = config if isinstance(config, ConfigNotifier) else ConfigNotifier(config)
    snapshot = notifier.snapshot
    registry = SessionRegistry(enumerator or select_backend())
    resolver = TargetResolver(registry, snapshot.slider_mapping)
    dispatcher = CommandDispatcher(snapshot.commands)
    coordinator = SessionCoordinator(
        resolver,
        dispatcher,
        invert_sliders=snapshot.invert_sliders,
        min_apply_interval=min_apply_interval,
    )
    coordinator.attach(notifier)
    await coordinator.start()
    _LOGGER.info(
        "Started fadersync with %d mapped controls", len(snapshot.slider_mapping)
    )
    return coordinator


async def async_unload(coordinator: SessionCoordinator) -> None:
    """Stop the engine and release every audio session."""
    try:
        await coordinator.stop()
    except Exception:
        _LOGGER.exception("Error stopping coordinator")
    await coordinator.dispatcher.drain()
    await coordinator.resolver.registry.close()
