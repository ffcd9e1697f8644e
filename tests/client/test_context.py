"""Tests for zeebe_testbed.client.context.CommandContext."""

from __future__ import annotations

import threading

import pytest

from zeebe_testbed.client.context import CommandContext


class TestDeadline:
    """Deadline handling with a fake clock."""

    def test_background_has_no_deadline(self):
        ctx = CommandContext.background()
        assert ctx.deadline is None
        assert ctx.remaining() is None
        assert ctx.expired is False
        assert ctx.cancelled is False

    def test_with_timeout(self, fake_clock):
        ctx = CommandContext.with_timeout(5, clock=fake_clock)
        assert ctx.remaining() == 5
        fake_clock.advance(3)
        assert ctx.remaining() == 2
        fake_clock.advance(10)
        assert ctx.remaining() == 0
        assert ctx.expired is True

    def test_child_inherits_tighter_deadline(self, fake_clock):
        parent = CommandContext.with_timeout(5, clock=fake_clock)
        assert parent.child(timeout=2).remaining() == 2
        assert parent.child(timeout=10).remaining() == 5
        assert parent.child().remaining() == 5

    def test_child_of_background(self, fake_clock):
        parent = CommandContext(clock=fake_clock)
        assert parent.child(timeout=3).remaining() == 3


class TestCancellation:
    """Cancellation flag and callbacks."""

    def test_cancel_runs_callbacks_once(self):
        ctx = CommandContext.background()
        calls = []
        ctx.on_cancel(lambda: calls.append("a"))
        ctx.on_cancel(lambda: calls.append("b"))
        ctx.cancel()
        ctx.cancel()
        assert ctx.cancelled is True
        assert calls == ["a", "b"]

    def test_unregister(self):
        ctx = CommandContext.background()
        calls = []
        unregister = ctx.on_cancel(lambda: calls.append("x"))
        unregister()
        ctx.cancel()
        assert calls == []

    def test_register_after_cancel_runs_immediately(self):
        ctx = CommandContext.background()
        ctx.cancel()
        calls = []
        unregister = ctx.on_cancel(lambda: calls.append("late"))
        assert calls == ["late"]
        unregister()

    def test_failing_callback_does_not_stop_others(self):
        ctx = CommandContext.background()
        calls = []

        def boom():
            raise RuntimeError("callback failed")

        ctx.on_cancel(boom)
        ctx.on_cancel(lambda: calls.append("ok"))
        ctx.cancel()
        assert calls == ["ok"]

    def test_parent_cancels_child(self):
        parent = CommandContext.background()
        child = parent.child()
        grandchild = child.child()
        parent.cancel()
        assert child.cancelled
        assert grandchild.cancelled

    def test_child_cancel_leaves_parent(self):
        parent = CommandContext.background()
        child = parent.child()
        child.cancel()
        assert child.cancelled
        assert not parent.cancelled

    def test_cancelled_child_unregisters_from_parent(self):
        parent = CommandContext.background()
        for _ in range(5):
            parent.child().cancel()
        assert parent._callbacks == {}

    def test_wait(self):
        ctx = CommandContext.background()
        assert ctx.wait(timeout=0.01) is False
        threading.Timer(0.01, ctx.cancel).start()
        assert ctx.wait(timeout=5) is True

    def test_repr(self):
        assert "cancelled=False" in repr(CommandContext.background())
