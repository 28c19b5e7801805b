"""Diagnostics snapshot of the running engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .coordinator import SessionCoordinator


def _sessions_data(coordinator: SessionCoordinator) -> list[dict[str, Any]]:
    """Return one entry per installed session, sorted by key."""
    targets = coordinator.resolver.registry.targets()
    return [t.to_dict() for t in sorted(targets, key=lambda t: t.key)]


def _commands_data(coordinator: SessionCoordinator) -> dict[int, dict[str, Any]]:
    """Return the configured commands without their arguments."""
    # Exclude args for security; they may embed credentials
    return {
        index: {"shell": spec.shell, "arg_count": len(spec.args)}
        for index, spec in sorted(coordinator.dispatcher.specs.items())
    }


def get_diagnostics(coordinator: SessionCoordinator) -> dict[str, Any]:
    """
    Return diagnostics for a coordinator.

    Reads only cached state; it never triggers a session rescan or a native
    volume read. Volumes are the last known levels of the installed targets.
    """
    registry = coordinator.resolver.registry
    return {
        "registry": {
            "state": registry.state.value,
            "generation": registry.generation,
            "executable_suffix": registry.executable_suffix,
        },
        "sessions": _sessions_data(coordinator),
        "slider_mapping": {
            index: list(names) for index, names in coordinator.resolver.mapping.items()
        },
        "commands": _commands_data(coordinator),
        "coordinator": {
            "running": coordinator.is_running,
            "pending_events": coordinator.pending,
            "running_commands": coordinator.dispatcher.running,
            "invert_sliders": coordinator.invert_sliders,
        },
    }
