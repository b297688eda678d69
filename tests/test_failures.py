"""Tests for seeding, reduction and subscriber failures."""

import asyncio
import logging

import pytest

from viewstream.contracts import NodeStatus
from viewstream.errors import (
    NodeNotReadyError,
    ReductionError,
    SeedingError,
    SubscriberError,
)
from viewstream.store.command_queue import CommandQueue
from viewstream.store.derivation import ViewDerivation
from viewstream.store.view import View


class BrokenInitialView(View[str, tuple]):
    async def get_initial_state(self):
        raise RuntimeError("database unavailable")

    def get_next_state(self, items, command):
        return (*items, command)


class ExplodingView(View[str, tuple]):
    """Appends commands; the command "explode" makes the reducer raise."""

    def get_initial_state(self):
        return ()

    def get_next_state(self, items, command):
        if command == "explode":
            raise ValueError("cannot fold explode")
        return (*items, command)


class CancellingView(View[str, tuple]):
    """Async reducer that raises CancelledError itself on "cancel"."""

    async def get_initial_state(self):
        return ()

    async def get_next_state(self, items, command):
        await asyncio.sleep(0)
        if command == "cancel":
            raise asyncio.CancelledError()
        return (*items, command)


class CancelledSeedView(View[str, tuple]):
    async def get_initial_state(self):
        raise asyncio.CancelledError()

    def get_next_state(self, items, command):
        return (*items, command)


class BlockingView(View[str, tuple]):
    """Reducer that waits for ``release`` before folding each command."""

    def __init__(self):
        super().__init__()
        self.folding = asyncio.Event()
        self.release = asyncio.Event()

    def get_initial_state(self):
        return ()

    async def get_next_state(self, items, command):
        self.folding.set()
        await self.release.wait()
        return (*items, command)


class LengthDerivation(ViewDerivation[tuple, int]):
    def get_initial_state(self):
        return 0

    def get_next_state(self, length, items):
        return len(items)


class TestSeedingFailure:
    @pytest.mark.asyncio
    async def test_ready_gate_rejects(self):
        view = BrokenInitialView()
        CommandQueue().register_view(view)

        with pytest.raises(SeedingError) as excinfo:
            await view.ready()

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert view.status is NodeStatus.FAILED
        with pytest.raises(NodeNotReadyError):
            view.state

    @pytest.mark.asyncio
    async def test_failure_in_replayed_command(self):
        queue = CommandQueue()
        queue.push(["a", "explode"])
        view = ExplodingView()
        queue.register_view(view)

        with pytest.raises(SeedingError):
            await view.ready()

    @pytest.mark.asyncio
    async def test_nothing_is_notified(self):
        received = []
        view = BrokenInitialView()
        view.subscribe(received.append)
        derivation = LengthDerivation()
        view.register_derivation(derivation)

        queue = CommandQueue()
        queue.register_view(view)
        queue.push("a")
        await queue.join()

        assert received == []
        assert derivation.status is NodeStatus.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_pushes_are_rejected(self):
        view = BrokenInitialView()
        view.initialize([])

        with pytest.raises(NodeNotReadyError):
            await view.push("a")
        # Still rejected later; there is no retry
        with pytest.raises(NodeNotReadyError):
            await view.push("b")

    @pytest.mark.asyncio
    async def test_queue_push_does_not_raise(self):
        queue = CommandQueue()
        queue.register_view(BrokenInitialView())
        queue.push("a")
        await queue.join()

        assert len(queue) == 1

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, caplog):
        view = BrokenInitialView()
        with caplog.at_level(logging.ERROR, logger="viewstream.store.node"):
            view.initialize([])
            await view.join()

        assert any("failed to initialize" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_cancelled_error_from_initial_state(self):
        view = CancelledSeedView()
        view.initialize(["a"])

        with pytest.raises(SeedingError) as excinfo:
            await view.ready()

        assert isinstance(excinfo.value.__cause__, asyncio.CancelledError)
        assert view.status is NodeStatus.FAILED
        with pytest.raises(NodeNotReadyError):
            await view.push("b")


class TestReductionFailure:
    @pytest.mark.asyncio
    async def test_push_raises_and_keeps_state(self):
        view = ExplodingView()
        view.initialize(["a"])

        with pytest.raises(ReductionError) as excinfo:
            await view.push("explode")

        assert isinstance(excinfo.value.__cause__, ValueError)
        assert view.state == ("a",)
        assert view.status is NodeStatus.READY

    @pytest.mark.asyncio
    async def test_failed_batch_is_discarded(self):
        received = []
        view = ExplodingView()
        view.subscribe(received.append)
        view.initialize([])

        with pytest.raises(ReductionError):
            await view.push(["b", "explode", "c"])

        assert view.state == ()
        assert received == [()]

    @pytest.mark.asyncio
    async def test_later_pushes_continue(self):
        queue = CommandQueue()
        view = ExplodingView()
        queue.register_view(view)

        queue.push("a")
        queue.push("explode")
        queue.push("b")
        await queue.join()

        assert view.state == ("a", "b")
        # The failed command still belongs to the log
        assert queue.log == ("a", "explode", "b")

    @pytest.mark.asyncio
    async def test_cancelled_error_from_reducer_fails_push(self):
        view = CancellingView()
        view.initialize(["a"])

        with pytest.raises(ReductionError) as excinfo:
            await view.push("cancel")

        assert isinstance(excinfo.value.__cause__, asyncio.CancelledError)
        assert await view.push("b") is True
        assert view.state == ("a", "b")

    @pytest.mark.asyncio
    async def test_cancelled_error_from_reducer_does_not_stall_queue(self):
        queue = CommandQueue()
        view = CancellingView()
        queue.register_view(view)

        queue.push("a")
        queue.push("cancel")
        queue.push("b")
        await asyncio.wait_for(queue.join(), 1)

        assert view.state == ("a", "b")
        assert view.status is NodeStatus.READY

    @pytest.mark.asyncio
    async def test_cancelled_drain_settles_queued_pushes(self):
        view = BlockingView()
        view.initialize([])
        await view.ready()

        first = view.push("a")
        second = view.push("b")
        await view.folding.wait()
        view._drain_task.cancel()

        with pytest.raises(ReductionError):
            await first
        with pytest.raises(ReductionError):
            await second

        # A later push starts a fresh drain from the committed state
        view.release.set()
        assert await view.push("c") is True
        assert view.state == ("c",)


class TestSubscriberFailure:
    @pytest.mark.asyncio
    async def test_isolate_policy(self, caplog):
        received = []

        def broken(state):
            raise RuntimeError("subscriber bug")

        view = ExplodingView(subscriber_error_policy="isolate")
        derivation = LengthDerivation()
        view.subscribe(broken)
        view.subscribe(received.append)
        view.register_derivation(derivation)
        view.initialize([])
        await view.join()

        with caplog.at_level(logging.ERROR, logger="viewstream.store.node"):
            assert await view.push("a") is True
        await view.join()

        assert received == [(), ("a",)]
        assert derivation.state == 1
        assert any(r.exc_info for r in caplog.records)

    @pytest.mark.asyncio
    async def test_propagate_policy(self):
        received = []

        def broken(state):
            raise RuntimeError("subscriber bug")

        view = ExplodingView(subscriber_error_policy="propagate")
        derivation = LengthDerivation()
        view.subscribe(broken)
        view.subscribe(received.append)
        view.register_derivation(derivation)
        view.initialize([])
        await view.join()

        with pytest.raises(SubscriberError) as excinfo:
            await view.push("a")
        await view.join()

        # The wave still completes and the state is committed
        assert len(excinfo.value.errors) == 1
        assert received == [(), ("a",)]
        assert derivation.state == 1
        assert view.state == ("a",)

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            ExplodingView(subscriber_error_policy="ignore")

    @pytest.mark.parametrize("threshold", ["250", -1, True])
    def test_invalid_slow_threshold_rejected(self, threshold):
        with pytest.raises(ValueError):
            ExplodingView(slow_reduction_warning_ms=threshold)
