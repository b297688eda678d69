"""CommandQueue - in-memory log of every command ever dispatched."""

import asyncio
import functools
import logging
from typing import Any, Callable, Generic, Sequence, TypeVar

from viewstream.contracts.nodes import NodeStatus
from viewstream.errors import NodeStateError
from viewstream.store.node import as_batch, log_forward_failure
from viewstream.store.view import View

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CommandQueue(Generic[T]):
    """Append-only command log with fan-out to attached views.

    ``T`` describes the shape of the commands the queue holds.

    Invariants:
    - Commands are never removed or modified once pushed
    - Log order is push order; a batch is appended contiguously
    - A view sees every command exactly once: replayed if it was pushed
      before the view was registered, forwarded live otherwise
    """

    def __init__(self) -> None:
        self._log: list[T] = []
        self._views: dict[View[T, Any], None] = {}
        # Forwarded pushes that have not settled yet
        self._in_flight: set[asyncio.Future[bool]] = set()

    @property
    def log(self) -> tuple[T, ...]:
        """Snapshot of the command log."""
        return tuple(self._log)

    @property
    def views(self) -> tuple[View[T, Any], ...]:
        return tuple(self._views)

    def __len__(self) -> int:
        return len(self._log)

    def push(self, command: T | Sequence[T]) -> None:
        """Push a command, or a list/tuple of commands, onto the queue.

        A batch is forwarded to each view as a single push so that each
        view notifies its subscribers at most once for the whole batch.
        """
        commands = as_batch(command)
        if not commands:
            return

        self._log.extend(commands)
        logger.debug(
            f"Pushed {len(commands)} command(s); log size {len(self._log)}, "
            f"{len(self._views)} view(s)"
        )

        for view in list(self._views):
            self._forward(view, commands)

    def _forward(self, view: View[T, Any], commands: list[T]) -> None:
        forwarded = view.push(commands)
        self._in_flight.add(forwarded)
        forwarded.add_done_callback(self._in_flight.discard)
        forwarded.add_done_callback(log_forward_failure(view))

    def register_view(self, view: View[T, Any]) -> Callable[[], None]:
        """Attach a view and initialize it with a copy of the log.

        The copy is taken now, so commands pushed while the view is still
        initializing are forwarded live and never replayed a second time.
        Initialization failures surface on ``view.ready()``.

        Returns:
            Function which unregisters the view

        Raises:
            NodeStateError: If the view was already initialized, by another
                queue or by this one before it was unregistered. A view is
                seeded once, so it cannot be re-attached
        """
        unregister = functools.partial(self.unregister_view, view)

        if view in self._views:
            logger.debug(f"{view!r} is already registered")
            return unregister

        if view.status is not NodeStatus.UNINITIALIZED:
            raise NodeStateError(
                f"{view!r} is already initialized; views cannot be re-attached"
            )

        view.initialize(list(self._log))
        self._views[view] = None
        logger.debug(f"Registered {view!r} with a replay of {len(self._log)} command(s)")

        return unregister

    def unregister_view(self, view: View[T, Any]) -> None:
        """Detach a view. Later pushes are not forwarded to it."""
        if view in self._views:
            del self._views[view]
            logger.debug(f"Unregistered {view!r}")

    async def join(self) -> None:
        """Wait until forwarded pushes and their derivation waves settle."""
        if self._in_flight:
            await asyncio.wait(set(self._in_flight))

        for view in list(self._views):
            await view.join()

    def __repr__(self) -> str:
        return f"<CommandQueue commands={len(self._log)} views={len(self._views)}>"
