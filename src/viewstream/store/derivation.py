"""ViewDerivation - a projection computed from another node's output."""

import asyncio
from abc import abstractmethod
from typing import TypeVar

from viewstream.contracts.reducer import MaybeAwaitable
from viewstream.store.node import ReductionNode

I = TypeVar("I")
O = TypeVar("O")


class ViewDerivation(ReductionNode[I, O]):
    """Derived state recomputed from a parent View or ViewDerivation.

    A derivation never sees commands. It is seeded once with the parent's
    state at registration time and then receives every parent state change
    through ``parent_did_change``. Derivations can host derivations of
    their own, forming chains of any depth.
    """

    @abstractmethod
    def get_next_state(self, current_state: O, parent_state: I) -> MaybeAwaitable[O]:
        """Recompute this derivation from a new parent state. Can be async.

        Must not mutate ``current_state``; return it unchanged to skip
        notifying subscribers and children.
        """

    def initialize(self, parent_state: I) -> None:
        """Seed from the parent's current state.

        The initial state and ``parent_state`` are folded together before
        anything is exposed to subscribers.
        """
        self._begin_seeding([parent_state])

    def parent_did_change(self, next_parent_state: I) -> "asyncio.Future[bool]":
        """Fold a new parent state; propagates to subscribers and children."""
        return self._enqueue([next_parent_state])
