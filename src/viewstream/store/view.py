"""View - a projection kept in sync with a command log."""

import asyncio
from abc import abstractmethod
from typing import Iterable, Sequence, TypeVar

from viewstream.contracts.reducer import MaybeAwaitable
from viewstream.store.node import ReductionNode, as_batch

T = TypeVar("T")
O = TypeVar("O")


class View(ReductionNode[T, O]):
    """Reduces an entire log of commands into a specialized data structure.

    Views can be thought of as a manifestation of a command log. A View is
    attached to a CommandQueue and, upon initialization, replays the whole
    log the queue holds, bringing it up to the most recent manifestation.
    After that every command pushed onto the queue is folded in live.

    ``T`` is the command shape of the associated CommandQueue; ``O`` is the
    data structure this View outputs.

    Example:
        class ItemSet(View[Command, frozenset[str]]):
            def get_initial_state(self):
                return frozenset()

            def get_next_state(self, items, command):
                if command.kind == "add" and command.item_id not in items:
                    return items | {command.item_id}
                return items
    """

    @abstractmethod
    def get_next_state(self, current_state: O, command: T) -> MaybeAwaitable[O]:
        """Describe how the data structure changes with one command.

        Called for every command in the log, in order. This method must
        **never** mutate ``current_state``; if the data changed, return a
        new object. Can be async.
        """

    def initialize(self, history: Iterable[T]) -> None:
        """Bring this view up to date with every command ever dispatched.

        Seeding runs in a task; ``await view.ready()`` to wait for it.

        Args:
            history: Log of all commands so far (copied before seeding)

        Raises:
            NodeStateError: If the view was already initialized
        """
        self._begin_seeding(list(history))

    def push(self, command: T | Sequence[T]) -> "asyncio.Future[bool]":
        """Fold a command, or a list/tuple of commands, into the view.

        A batch is folded as a whole and produces at most one notification.
        Commands pushed before the view is ready wait for seeding to finish.

        Returns:
            Future resolving True if the state changed, False otherwise.
            It raises ReductionError if the reducer failed, and
            NodeNotReadyError if the view failed to initialize.
        """
        return self._enqueue(as_batch(command))
