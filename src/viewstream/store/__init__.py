"""viewstream store - command log, views and derivations."""

from viewstream.store.command_queue import CommandQueue
from viewstream.store.derivation import ViewDerivation
from viewstream.store.node import ReductionNode
from viewstream.store.view import View

__all__ = [
    "CommandQueue",
    "ReductionNode",
    "View",
    "ViewDerivation",
]
