"""Contracts - typed schemas shared by the store."""

from viewstream.contracts.commands import Command
from viewstream.contracts.nodes import NodeInfo, NodeStatus
from viewstream.contracts.reducer import MaybeAwaitable, Reducer, Subscriber

__all__ = [
    "Command",
    "NodeInfo",
    "NodeStatus",
    "MaybeAwaitable",
    "Reducer",
    "Subscriber",
]
