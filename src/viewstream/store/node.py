"""ReductionNode - the replay-then-stream state machine behind views.

Both View and ViewDerivation are ReductionNodes. A node:
- is seeded once (initial state folded with its seeding inputs)
- resolves a one-shot ready gate when seeding succeeds
- applies later input through its own FIFO work queue, one item at a time
- notifies subscribers and child derivations only when state changes

Invariants:
- state is replaced, never mutated, by reducer output
- change detection is by identity (``is``)
- no two folds run concurrently on the same node, even across suspensions
"""

import asyncio
import functools
import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import TYPE_CHECKING, Any, Callable, Generic, Iterable, TypeVar

from viewstream.config import get_config
from viewstream.config.defaults import SUBSCRIBER_ERROR_POLICIES
from viewstream.config.loader import is_valid_warning_threshold
from viewstream.contracts.nodes import NodeInfo, NodeStatus
from viewstream.contracts.reducer import MaybeAwaitable, Reducer, Subscriber
from viewstream.errors import (
    NodeNotReadyError,
    NodeStateError,
    ReductionError,
    SeedingError,
    SubscriberError,
    ViewStreamError,
)

if TYPE_CHECKING:
    from viewstream.store.derivation import ViewDerivation

logger = logging.getLogger(__name__)

I = TypeVar("I")
O = TypeVar("O")

# Marks state that has not been seeded yet
_MISSING: Any = object()


def as_batch(item: Any) -> list[Any]:
    """Normalize a single input or a list/tuple of inputs to a list."""
    if isinstance(item, (list, tuple)):
        return list(item)
    return [item]


async def _resolve(result: MaybeAwaitable[O]) -> O:
    """Await reducer output if it is awaitable."""
    if inspect.isawaitable(result):
        return await result
    return result


async def fold(reducer: Reducer[I, O], state: O, inputs: Iterable[I]) -> O:
    """Fold inputs into state in order; each step sees the previous result."""
    for item in inputs:
        state = await _resolve(reducer.get_next_state(state, item))
    return state


def _is_task_cancellation(error: BaseException) -> bool:
    """Tell a cancel() of the running task from a CancelledError a reducer raised."""
    if not isinstance(error, asyncio.CancelledError):
        return False
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


def log_forward_failure(target: object) -> Callable[[asyncio.Future], None]:
    """Build a done-callback that logs failures of work forwarded to target.

    Used where an update is fanned out and nobody awaits the result, so the
    failure is reported once here instead of as an unretrieved exception.
    """

    def callback(future: asyncio.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is None:
            return
        if isinstance(error, (NodeNotReadyError, ReductionError)):
            # Already logged by the node itself
            logger.debug(f"Dropped update for {target!r}: {error}")
        else:
            logger.error(f"Update forwarded to {target!r} failed: {error}")

    return callback


def _settle(future: asyncio.Future, result: Any = None, error: BaseException | None = None) -> None:
    """Complete a work item future unless the caller cancelled it."""
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


class ReductionNode(ABC, Generic[I, O]):
    """Base class for views and derivations.

    Subclasses implement ``get_initial_state`` and ``get_next_state``; both
    may be plain functions or coroutines. Subclasses overriding ``__init__``
    must call ``super().__init__()``.

    Nodes are registered in sets by identity, so subclasses must stay
    hashable (avoid ``@dataclass(eq=True)`` without ``unsafe_hash``).
    """

    def __init__(
        self,
        *,
        subscriber_error_policy: str | None = None,
        slow_reduction_warning_ms: float | None = None,
    ) -> None:
        """Initialize the node.

        Args:
            subscriber_error_policy: "isolate" or "propagate"; defaults to config
            slow_reduction_warning_ms: Warn when a fold exceeds this; 0 disables
        """
        config = get_config()
        self.subscriber_error_policy = (
            subscriber_error_policy or config.SUBSCRIBER_ERROR_POLICY
        )
        if self.subscriber_error_policy not in SUBSCRIBER_ERROR_POLICIES:
            raise ValueError(
                f"Unknown subscriber error policy: {self.subscriber_error_policy!r}"
            )
        self.slow_reduction_warning_ms = (
            config.SLOW_REDUCTION_WARNING_MS
            if slow_reduction_warning_ms is None
            else slow_reduction_warning_ms
        )
        if not is_valid_warning_threshold(self.slow_reduction_warning_ms):
            raise ValueError(
                f"slow_reduction_warning_ms must be a non-negative number, "
                f"got {self.slow_reduction_warning_ms!r}"
            )

        self._status = NodeStatus.UNINITIALIZED
        self._state: O = _MISSING

        # Ordered sets (dict keys keep registration order)
        self._subscribers: dict[Subscriber[O], None] = {}
        self._derivations: dict["ViewDerivation[O, Any]", None] = {}

        # One-shot ready gate, created on first use inside the event loop
        self._gate: asyncio.Future[None] | None = None
        self._seed_task: asyncio.Task[None] | None = None

        # Work queue: (inputs, completion future), drained by one task
        self._pending: deque[tuple[list[I], asyncio.Future[bool]]] = deque()
        self._drain_task: asyncio.Task[None] | None = None

    # ─────────────────────────────────────────────────────────────────────
    # Reducer contract
    # ─────────────────────────────────────────────────────────────────────

    @abstractmethod
    def get_initial_state(self) -> MaybeAwaitable[O]:
        """Return the state before any input has been folded. Can be async."""

    @abstractmethod
    def get_next_state(self, current_state: O, item: I) -> MaybeAwaitable[O]:
        """Fold one input into the current state. Can be async.

        This method must **never** mutate ``current_state``. Return the same
        object when nothing changed, and a new object when something did;
        subscribers are only notified when the returned object ``is not``
        the previous state. For scalar states this means a freshly built but
        equal ``str`` or ``int`` (an f-string, an int above 256) counts as a
        change; return ``current_state`` itself when the value is equal.
        """

    # ─────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────

    @property
    def status(self) -> NodeStatus:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status is NodeStatus.READY

    @property
    def state(self) -> O:
        """Most recently committed state.

        Raises:
            NodeNotReadyError: If the node has not finished seeding
        """
        if self._status is not NodeStatus.READY:
            raise NodeNotReadyError(f"{self!r} has no state yet")
        return self._state

    def _ready_gate(self) -> "asyncio.Future[None]":
        if self._gate is None:
            self._gate = asyncio.get_running_loop().create_future()
        return self._gate

    async def ready(self) -> None:
        """Wait until the node has been seeded.

        Raises:
            SeedingError: If seeding failed
        """
        await asyncio.shield(self._ready_gate())

    # ─────────────────────────────────────────────────────────────────────
    # Seeding
    # ─────────────────────────────────────────────────────────────────────

    def _begin_seeding(self, inputs: list[I]) -> None:
        """Start folding ``inputs`` into the initial state in a task."""
        if self._status is not NodeStatus.UNINITIALIZED:
            raise NodeStateError(
                f"{self!r} can only be initialized once (status: {self._status.value})"
            )

        loop = asyncio.get_running_loop()
        self._ready_gate()
        self._status = NodeStatus.INITIALIZING
        self._seed_task = loop.create_task(
            self._seed(inputs), name=f"{type(self).__name__}.seed"
        )

    async def _seed(self, inputs: list[I]) -> None:
        gate = self._ready_gate()
        started = time.monotonic()

        try:
            state = await _resolve(self.get_initial_state())
            state = await fold(self, state, inputs)
        except BaseException as e:
            self._status = NodeStatus.FAILED
            logger.error(f"{self!r} failed to initialize: {e!r}")
            error = SeedingError(f"{type(self).__name__} failed to initialize: {e!r}")
            error.__cause__ = e
            gate.set_exception(error)
            # Reported above; awaiting callers still receive the error
            gate.exception()
            if _is_task_cancellation(e) or not isinstance(e, (Exception, asyncio.CancelledError)):
                raise
            return

        self._state = state
        self._status = NodeStatus.READY
        gate.set_result(None)

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.debug(f"{self!r} seeded from {len(inputs)} input(s) in {elapsed_ms:.1f}ms")

        # Everything registered while initializing is waiting for this state
        for callback in list(self._subscribers):
            if callback in self._subscribers:
                self._catch_up(callback, state)
        for derivation in list(self._derivations):
            if derivation in self._derivations:
                self._seed_derivation(derivation, state)

    # ─────────────────────────────────────────────────────────────────────
    # Subscriptions
    # ─────────────────────────────────────────────────────────────────────

    def subscribe(self, callback: Subscriber[O]) -> Callable[[], None]:
        """Subscribe to state changes. Return a function which unsubscribes.

        The callback is invoked once with the current state as soon as the
        node is ready (immediately if it already is), then on every change.
        Subscribing the same callback twice has no effect.
        """
        if callback not in self._subscribers:
            self._subscribers[callback] = None
            if self._status is NodeStatus.READY:
                self._catch_up(callback, self._state)

        return functools.partial(self.unsubscribe, callback)

    def unsubscribe(self, callback: Subscriber[O]) -> None:
        """Remove a callback. No-op if it is not subscribed."""
        self._subscribers.pop(callback, None)

    def _catch_up(self, callback: Subscriber[O], state: O) -> None:
        try:
            callback(state)
        except Exception:
            logger.exception(f"Subscriber {callback!r} of {self!r} failed during catch-up")

    # ─────────────────────────────────────────────────────────────────────
    # Derivations
    # ─────────────────────────────────────────────────────────────────────

    def register_derivation(self, derivation: "ViewDerivation[O, Any]") -> Callable[[], None]:
        """Attach a derivation fed by this node's state changes.

        Once this node is ready the derivation is initialized with the state
        at that moment. Return a function which deregisters it.
        """
        if derivation not in self._derivations:
            self._derivations[derivation] = None
            if self._status is NodeStatus.READY:
                self._seed_derivation(derivation, self._state)

        return functools.partial(self.deregister_derivation, derivation)

    def deregister_derivation(self, derivation: "ViewDerivation[O, Any]") -> None:
        """Detach a derivation. No-op if it is not registered."""
        self._derivations.pop(derivation, None)

    def _seed_derivation(self, derivation: "ViewDerivation[O, Any]", state: O) -> None:
        try:
            derivation.initialize(state)
        except NodeStateError as e:
            logger.error(f"{self!r} could not initialize {derivation!r}: {e}")

    # ─────────────────────────────────────────────────────────────────────
    # Work queue
    # ─────────────────────────────────────────────────────────────────────

    def _enqueue(self, inputs: list[I]) -> "asyncio.Future[bool]":
        """Queue inputs for folding; the future resolves True if state changed."""
        loop = asyncio.get_running_loop()
        done: asyncio.Future[bool] = loop.create_future()
        self._pending.append((inputs, done))

        if self._drain_task is None or self._drain_task.done():
            self._drain_task = loop.create_task(
                self._drain(), name=f"{type(self).__name__}.drain"
            )

        return done

    async def _drain(self) -> None:
        try:
            await asyncio.shield(self._ready_gate())
        except SeedingError as e:
            self._reject_pending(NodeNotReadyError, f"{self!r} never became ready", e)
            return
        except BaseException as e:
            self._reject_pending(ReductionError, f"{self!r} stopped before applying input", e)
            raise

        while self._pending:
            inputs, done = self._pending.popleft()
            try:
                changed = await self._apply(inputs)
            except (ReductionError, SubscriberError) as e:
                _settle(done, error=e)
            except Exception as e:
                logger.exception(f"{self!r} failed to apply {len(inputs)} input(s)")
                error = ReductionError(f"{type(self).__name__} failed to apply input: {e}")
                error.__cause__ = e
                _settle(done, error=error)
            except BaseException as e:
                # The drain task is going away; nothing else would settle these
                message = f"{self!r} stopped before applying input"
                error = ReductionError(message)
                error.__cause__ = e
                _settle(done, error=error)
                self._reject_pending(ReductionError, message, e)
                raise
            else:
                _settle(done, result=changed)

    def _reject_pending(
        self, error_type: type[ViewStreamError], message: str, cause: BaseException
    ) -> None:
        while self._pending:
            _, done = self._pending.popleft()
            error = error_type(message)
            error.__cause__ = cause
            _settle(done, error=error)

    async def _apply(self, inputs: list[I]) -> bool:
        """Fold inputs from the committed state and publish the result."""
        previous = self._state
        started = time.monotonic()

        try:
            state = await fold(self, previous, inputs)
        except (Exception, asyncio.CancelledError) as e:
            if _is_task_cancellation(e):
                raise
            # The batch is discarded as a whole; committed state is untouched
            logger.error(f"{self!r} failed to fold {len(inputs)} input(s): {e!r}")
            raise ReductionError(f"{type(self).__name__} failed to fold input: {e!r}") from e

        self._warn_if_slow(started, len(inputs))

        # Note the identity check: reducers signal "unchanged" by returning
        # the state object they were given
        if state is previous:
            return False

        self._state = state
        self._notify(state)
        return True

    def _notify(self, state: O) -> None:
        errors: list[Exception] = []

        for callback in list(self._subscribers):
            if callback not in self._subscribers:
                continue
            try:
                callback(state)
            except Exception as e:
                if self.subscriber_error_policy == "propagate":
                    errors.append(e)
                else:
                    logger.exception(f"Subscriber {callback!r} of {self!r} failed")

        for derivation in list(self._derivations):
            forwarded = derivation.parent_did_change(state)
            forwarded.add_done_callback(log_forward_failure(derivation))

        if errors:
            raise SubscriberError(
                f"{len(errors)} subscriber(s) of {type(self).__name__} failed", errors
            )

    def _warn_if_slow(self, started: float, count: int) -> None:
        if not self.slow_reduction_warning_ms:
            return
        elapsed_ms = (time.monotonic() - started) * 1000
        if elapsed_ms > self.slow_reduction_warning_ms:
            logger.warning(f"{self!r} took {elapsed_ms:.0f}ms to fold {count} input(s)")

    async def join(self) -> None:
        """Wait for seeding and queued work here and in every descendant.

        Work queued on a node that is never initialized is never drained,
        so joining such a node does not return.
        """
        if self._seed_task is not None and not self._seed_task.done():
            await asyncio.wait({self._seed_task})

        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.wait({self._drain_task})

        for derivation in list(self._derivations):
            await derivation.join()

    # ─────────────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────────────

    def describe(self) -> NodeInfo:
        return NodeInfo(
            name=type(self).__name__,
            status=self._status,
            subscribers=len(self._subscribers),
            derivations=len(self._derivations),
            pending=len(self._pending),
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} status={self._status.value}>"
