import time

from rpcmiddleware.context import (
    Canceled,
    DeadlineExceeded,
    background,
    peer_address,
    with_peer,
)


def test_values_are_found_through_the_chain():
    ctx = background().with_value("a", 1).with_value("b", 2)
    assert ctx.value("a") == 1
    assert ctx.value("b") == 2
    assert ctx.value("missing") is None


def test_child_value_shadows_parent():
    parent = background().with_value("k", "old")
    child = parent.with_value("k", "new")
    assert child.value("k") == "new"
    assert parent.value("k") == "old"


def test_background_is_never_done():
    ctx = background()
    assert ctx.err() is None
    assert ctx.done() is False
    assert ctx.wait(0.01) is False
    assert ctx.deadline() is None


def test_cancel_marks_context_done():
    ctx, cancel = background().with_cancel()
    assert ctx.err() is None
    cancel()
    assert isinstance(ctx.err(), Canceled)
    assert ctx.wait(1.0) is True


def test_cancel_propagates_to_descendants():
    parent, cancel = background().with_cancel()
    valued = parent.with_value("k", "v")
    child, _ = valued.with_cancel()
    assert child.done() is False
    cancel()
    assert valued.done() is True
    assert child.done() is True
    assert child.wait(1.0) is True
    assert isinstance(valued.err(), Canceled)
    assert isinstance(child.err(), Canceled)


def test_child_of_cancelled_context_starts_cancelled():
    parent, cancel = background().with_cancel()
    cancel()
    child, _ = parent.with_cancel()
    assert child.done() is True
    assert child.wait(0.0) is True
    assert isinstance(child.err(), Canceled)


def test_cancelling_child_leaves_parent_live():
    parent, _ = background().with_cancel()
    child, cancel_child = parent.with_cancel()
    cancel_child()
    assert child.done() is True
    assert parent.done() is False


def test_timeout_expires():
    ctx, _ = background().with_timeout(0.02)
    assert ctx.wait(2.0) is True
    assert isinstance(ctx.err(), DeadlineExceeded)


def test_cancel_after_deadline_reports_deadline():
    ctx, cancel = background().with_timeout(0.01)
    time.sleep(0.03)
    cancel()
    assert ctx.done() is True
    assert isinstance(ctx.err(), DeadlineExceeded)
    assert not isinstance(ctx.err(), Canceled)


def test_child_deadline_never_later_than_parent():
    parent, _ = background().with_timeout(10.0)
    longer, _ = parent.with_timeout(100.0)
    shorter, _ = parent.with_timeout(1.0)
    assert longer.deadline() == parent.deadline()
    assert shorter.deadline() < parent.deadline()


def test_value_context_inherits_deadline():
    parent, _ = background().with_timeout(5.0)
    child = parent.with_value("k", "v")
    assert child.deadline() == parent.deadline()


def test_wait_returns_false_before_deadline():
    ctx, _ = background().with_timeout(10.0)
    assert ctx.wait(0.01) is False


def test_peer_address_round_trip():
    ctx = with_peer(background(), "127.0.0.1:5000")
    assert peer_address(ctx) == "127.0.0.1:5000"
    assert peer_address(ctx.with_value("x", 1)) == "127.0.0.1:5000"
    assert peer_address(background()) is None