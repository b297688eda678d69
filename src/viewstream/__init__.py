"""viewstream - replayable command log with incrementally reduced views."""

from viewstream.contracts import Command, NodeInfo, NodeStatus
from viewstream.errors import (
    NodeNotReadyError,
    NodeStateError,
    ReductionError,
    SeedingError,
    SubscriberError,
    ViewStreamError,
)
from viewstream.store import CommandQueue, ReductionNode, View, ViewDerivation

__version__ = "0.1.0"

__all__ = [
    "Command",
    "CommandQueue",
    "NodeInfo",
    "NodeStatus",
    "ReductionNode",
    "View",
    "ViewDerivation",
    # Errors
    "ViewStreamError",
    "SeedingError",
    "NodeNotReadyError",
    "NodeStateError",
    "ReductionError",
    "SubscriberError",
]
