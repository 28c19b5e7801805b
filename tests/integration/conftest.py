"""Shared pytest fixtures for integration tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from fadersync import async_setup, async_unload
from fadersync.config import ConfigNotifier, ConfigSnapshot
from tests.integration.simulator import simulated_audio_system

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from fadersync.coordinator import SessionCoordinator
    from tests.integration.simulator import SimulatedAudioSystem, SimulatedEnumerator


@pytest.fixture
async def simulator_fixture() -> AsyncGenerator[
    tuple[SimulatedAudioSystem, SimulatedEnumerator]
]:
    """Provide a simulated system running chrome, spotify and discord."""
    async with simulated_audio_system("Chrome.exe", "Spotify.exe", "Discord.exe") as (
        system,
        enumerator,
    ):
        yield (system, enumerator)


@pytest.fixture
def notifier() -> ConfigNotifier:
    """Provide a config notifier with a typical mapping."""
    return ConfigNotifier(
        ConfigSnapshot.from_dict(
            {
                "slider_mapping": {
                    0: "master",
                    1: ["chrome", "firefox"],
                    2: "spotify.exe",
                    3: "system",
                },
                "commands": {0: ["true"]},
            }
        )
    )


@pytest.fixture
async def coordinator_fixture(
    simulator_fixture: tuple[SimulatedAudioSystem, SimulatedEnumerator],
    notifier: ConfigNotifier,
) -> AsyncGenerator[SessionCoordinator]:
    """Provide a started engine over the simulator with automatic cleanup."""
    _system, enumerator = simulator_fixture
    coordinator = await async_setup(notifier, enumerator=enumerator)
    try:
        yield coordinator
    finally:
        await async_unload(coordinator)
