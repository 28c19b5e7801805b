"""
Fire-and-forget command runner for button presses.

Launches run as background tasks. Their outcome is only logged; nothing is
reported back to the caller or to the volume path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .const import IS_WINDOWS, POSIX_SHELL, WINDOWS_SHELL
from .errors import CommandLaunchFailedError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .config import CommandSpec, ConfigSnapshot

_LOGGER = logging.getLogger(__name__)


def build_argv(spec: CommandSpec, *, windows_shell: bool) -> list[str]:
    """Return the argv to launch for a spec (empty if nothing to run)."""
    args = [arg.strip() for arg in spec.args if arg.strip()]
    if not args:
        return []
    if spec.shell:
        shell = WINDOWS_SHELL if windows_shell else POSIX_SHELL
        return [*shell, " ".join(args)]
    return args


class CommandDispatcher:
    """Run the command configured for a button index."""

    def __init__(
        self,
        specs: Mapping[int, CommandSpec] | None = None,
        *,
        windows_shell: bool = IS_WINDOWS,
    ) -> None:
        """Initialize with the command table and the shell recipe flag."""
        self._specs: dict[int, CommandSpec] = dict(specs or {})
        self._windows_shell = windows_shell
        # Strong references so running launches are not garbage collected
        self._tasks: set[asyncio.Task] = set()

    @property
    def specs(self) -> Mapping[int, CommandSpec]:
        """Return the active command table."""
        return self._specs

    @property
    def running(self) -> int:
        """Return the number of launches still in progress."""
        return len(self._tasks)

    def update_specs(self, specs: Mapping[int, CommandSpec]) -> None:
        """Replace the command table."""
        self._specs = dict(specs)

    def on_config_reload(self, snapshot: ConfigSnapshot) -> None:
        """Reload-notification callback."""
        self.update_specs(snapshot.commands)

    def trigger(self, event_index: int) -> asyncio.Task | None:
        """
        Launch the command for ``event_index`` and return immediately.

        Must be called from the event loop. Returns the background task, or
        None when no command is configured.
        """
        spec = self._specs.get(event_index)
        if spec is None:
            return None
        argv = build_argv(spec, windows_shell=self._windows_shell)
        if not argv:
            return None

        task = asyncio.get_running_loop().create_task(
            self._run(event_index, argv), name=f"fadersync_command_{event_index}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, event_index: int, argv: list[str]) -> None:
        try:
            process = await self._launch(argv)
        except CommandLaunchFailedError as exc:
            _LOGGER.warning(
                "Failed to execute configured command %d (%s): %s",
                event_index,
                argv,
                exc,
            )
            return
        _LOGGER.debug("Started configured command %d: %s", event_index, argv)

        returncode = await process.wait()
        if returncode != 0:
            _LOGGER.warning(
                "Configured command %d exited with status %d: %s",
                event_index,
                returncode,
                argv,
            )
            return
        _LOGGER.debug("Configured command %d finished successfully", event_index)

    async def _launch(self, argv: list[str]) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(*argv)
        except (OSError, ValueError) as exc:
            raise CommandLaunchFailedError(str(exc)) from exc

    async def drain(self) -> None:
        """Wait for running launches to finish, without cancelling them."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
