"""Command envelope - optional base for application commands."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class Command(BaseModel):
    """Immutable command envelope.

    The queue and its views never inspect commands, so any value works as a
    command. Subclass this model when you want validated, frozen commands:

        class AddItem(Command):
            kind: Literal["add"] = "add"
            item_id: str

    Commands are immutable once created (frozen=True).
    """

    kind: str = Field(description="Command type, used by reducers to dispatch")
    issued_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Wall clock time the command was created",
    )

    model_config = {"frozen": True}
