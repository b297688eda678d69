"""Reducer contract supplied by the application."""

from typing import Awaitable, Callable, Protocol, TypeVar, Union, runtime_checkable

I_contra = TypeVar("I_contra", contravariant=True)
O = TypeVar("O")

# A reducer result may be the value itself or an awaitable resolving to it
MaybeAwaitable = Union[O, Awaitable[O]]

# Subscribers receive every genuinely new state
Subscriber = Callable[[O], None]


@runtime_checkable
class Reducer(Protocol[I_contra, O]):
    """Protocol implemented by views and derivations.

    ``get_next_state`` must treat ``current_state`` as immutable. Returning
    the very same object (``is``) means "nothing changed"; returning a new
    object means the state changed and subscribers are notified.
    """

    def get_initial_state(self) -> MaybeAwaitable[O]:
        """Return the state before any input has been folded."""
        ...

    def get_next_state(self, current_state: O, item: I_contra) -> MaybeAwaitable[O]:
        """Fold one input into the current state."""
        ...
