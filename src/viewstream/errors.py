"""Exceptions raised by views, derivations and command queues."""


class ViewStreamError(Exception):
    """Base class for all viewstream errors."""


class SeedingError(ViewStreamError):
    """A node failed to compute its initial state.

    The node's ready gate is rejected permanently with this error. The
    underlying exception is available as ``__cause__``.
    """


class NodeNotReadyError(ViewStreamError):
    """State was requested from a node whose ready gate never resolved."""


class NodeStateError(ViewStreamError):
    """An operation is not valid for the node's current status."""


class ReductionError(ViewStreamError):
    """A reducer raised while folding pushed input.

    The batch is discarded and the node keeps its last committed state.
    """


class SubscriberError(ViewStreamError):
    """One or more subscriber callbacks raised during a notification wave."""

    def __init__(self, message: str, errors: list[BaseException]):
        super().__init__(message)
        self.errors = errors
