"""
Coordinator for fadersync.

Single cadence that:
- Sequences slider moves and button presses through a single worker
- Optionally enforces a minimum delay between volume applications
- Keeps one failing event from stopping the ones behind it
- Hands button presses to the command dispatcher without waiting on them
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, Awaitable, Callable

    from .commands import CommandDispatcher
    from .config import ConfigNotifier, ConfigSnapshot
    from .resolver import TargetResolver

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SliderMove:
    """A normalized slider reading."""

    index: int
    value: float


@dataclass(frozen=True)
class ButtonPress:
    """A discrete button event."""

    index: int


ControlEvent = SliderMove | ButtonPress


@dataclass
class _Queued:
    """A queued coordinator event."""

    event: ControlEvent
    op: Callable[[], Awaitable[Any]]
    future: asyncio.Future | None = None


class SessionCoordinator:
    """Single-queue, single-worker event coordinator."""

    def __init__(
        self,
        resolver: TargetResolver,
        dispatcher: CommandDispatcher,
        *,
        invert_sliders: bool = False,
        min_apply_interval: float = 0.0,
    ) -> None:
        """Initialize a single-worker queue over the resolver and dispatcher."""
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._invert_sliders = invert_sliders
        self._min_apply_interval = max(0.0, min_apply_interval)
        self._queue: asyncio.Queue[_Queued] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._last_apply_time: float = 0.0
        self._config_unsub: Callable[[], None] | None = None

    @property
    def resolver(self) -> TargetResolver:
        """Return the target resolver."""
        return self._resolver

    @property
    def dispatcher(self) -> CommandDispatcher:
        """Return the command dispatcher."""
        return self._dispatcher

    @property
    def invert_sliders(self) -> bool:
        """Return True if slider values are inverted before use."""
        return self._invert_sliders

    @property
    def is_running(self) -> bool:
        """Return True while the worker is alive."""
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        """Return the number of queued events."""
        return self._queue.qsize()

    async def start(self) -> None:
        """Start the single worker."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(
                self._run_worker(), name="fadersync_worker"
            )

    async def stop(self) -> None:
        """Stop the worker and cancel pending events."""
        if self._worker is not None:
            self._worker.cancel()
            # Drain queue and cancel futures
            while not self._queue.empty():
                with contextlib.suppress(asyncio.QueueEmpty):
                    queued = self._queue.get_nowait()
                    if queued.future is not None and not queued.future.done():
                        queued.future.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
        if self._config_unsub is not None:
            self._config_unsub()
            self._config_unsub = None

    # Configuration
    def apply_config(self, snapshot: ConfigSnapshot) -> None:
        """Adopt a new configuration snapshot."""
        self._resolver.on_config_reload(snapshot)
        self._dispatcher.on_config_reload(snapshot)
        self._invert_sliders = snapshot.invert_sliders
        _LOGGER.debug("Applied configuration snapshot")

    def attach(self, notifier: ConfigNotifier) -> None:
        """Follow reloads published by ``notifier``."""
        if self._config_unsub is not None:
            self._config_unsub()
        self.apply_config(notifier.snapshot)
        self._config_unsub = notifier.subscribe(self.apply_config)

    # Event intake
    def submit(self, event: ControlEvent) -> None:
        """Queue an event without waiting for it."""
        self._queue.put_nowait(_Queued(event=event, op=self._op_for(event)))

    def submit_move(self, index: int, value: float) -> None:
        """Queue a slider reading without waiting for it."""
        self.submit(SliderMove(index, value))

    def submit_press(self, index: int) -> None:
        """Queue a button press without waiting for it."""
        self.submit(ButtonPress(index))

    async def move(self, index: int, value: float) -> None:
        """Queue a slider reading and wait until it has been applied."""
        await self._execute(SliderMove(index, value))

    async def press(self, index: int) -> None:
        """
        Queue a button press and wait until its command task is scheduled.

        The command itself starts in the background; use the dispatcher's
        ``drain()`` to wait for it to finish.
        """
        await self._execute(ButtonPress(index))

    async def consume(self, events: AsyncIterable[ControlEvent]) -> None:
        """Queue every event from an async stream until it ends."""
        async for event in events:
            self.submit(event)

    async def _execute(self, event: ControlEvent) -> Any:
        """Enqueue an event and await its result or error."""
        future = asyncio.get_running_loop().create_future()
        await self._queue.put(
            _Queued(event=event, op=self._op_for(event), future=future)
        )
        return await future

    def _op_for(self, event: ControlEvent) -> Callable[[], Awaitable[Any]]:
        if isinstance(event, SliderMove):
            return lambda: self._handle_move(event)
        return lambda: self._handle_press(event)

    async def _handle_move(self, event: SliderMove) -> None:
        # Enforce pacing
        now = asyncio.get_running_loop().time()
        delay = self._last_apply_time + self._min_apply_interval - now
        if delay > 0:
            await asyncio.sleep(delay)
        value = 1.0 - event.value if self._invert_sliders else event.value
        try:
            await self._resolver.apply(event.index, value)
        finally:
            self._last_apply_time = asyncio.get_running_loop().time()

    async def _handle_press(self, event: ButtonPress) -> None:
        self._dispatcher.trigger(event.index)

    async def _run_worker(self) -> None:
        """Worker: dequeue, handle, propagate result/error to waiters."""
        while True:
            queued = await self._queue.get()
            try:
                result = await queued.op()
                if queued.future is not None and not queued.future.done():
                    queued.future.set_result(result)
            except Exception as exc:  # noqa: BLE001 - log and keep the cadence alive
                _LOGGER.exception("Failed to handle %s", queued.event)
                if queued.future is not None and not queued.future.done():
                    queued.future.set_exception(exc)
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()
