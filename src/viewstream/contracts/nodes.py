"""Node status and introspection types."""

from enum import Enum

from pydantic import BaseModel, Field


class NodeStatus(str, Enum):
    """Lifecycle of a view or derivation.

    UNINITIALIZED -> INITIALIZING -> READY, or
    UNINITIALIZED -> INITIALIZING -> FAILED.
    READY and FAILED are terminal.
    """

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class NodeInfo(BaseModel):
    """Point-in-time description of a node, for debugging and tests."""

    name: str = Field(description="Class name of the node")
    status: NodeStatus
    subscribers: int = Field(ge=0, description="Number of subscriber callbacks")
    derivations: int = Field(ge=0, description="Number of registered children")
    pending: int = Field(ge=0, description="Work items waiting to be folded")

    model_config = {"frozen": True}
