from unittest.mock import Mock

import pytest

from award_sniper.dispatch_queue import DispatchQueue, QueueTicket


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(clock):
    q = DispatchQueue(cooldown=65, clock=clock)
    yield q
    q.shutdown()


def run_next(queue):
    future = queue.tick()
    assert future is not None
    future.result(timeout=5)


def test_fifo_with_cooldown(queue, clock):
    ran = []
    queue.enqueue(lambda: ran.append("a"), label="a")
    queue.enqueue(lambda: ran.append("b"), label="b")

    run_next(queue)
    assert ran == ["a"]

    assert queue.tick() is None
    clock.now += 64
    assert queue.tick() is None
    clock.now += 1
    run_next(queue)
    assert ran == ["a", "b"]
    assert len(queue) == 0


def test_starts_are_a_cooldown_apart(queue, clock):
    starts = []

    def job(name):
        def run():
            starts.append((name, clock()))
            clock.now += 7
        return run

    for name in ("a", "b", "c"):
        queue.enqueue(job(name), label=name)

    while len(queue) or queue.busy:
        future = queue.tick()
        if future is None:
            clock.now += 5
        else:
            future.result(timeout=5)

    assert [name for name, _ in starts] == ["a", "b", "c"]
    gaps = [later - earlier for (_, earlier), (_, later) in zip(starts, starts[1:])]
    assert all(gap >= 65 + 7 for gap in gaps)


def test_tick_on_empty_queue(queue):
    assert queue.tick() is None
    assert not queue.busy


def test_eta(queue, clock):
    assert queue.enqueue(lambda: None) == QueueTicket(position=0, eta_seconds=0)
    assert queue.enqueue(lambda: None) == QueueTicket(position=1, eta_seconds=65)

    run_next(queue)
    clock.now += 10

    ticket = queue.enqueue(lambda: None)
    assert ticket.position == 1
    assert ticket.eta_seconds == pytest.approx(65 + 55)


def test_failing_job_does_not_block(queue, clock):
    ran = []

    def boom():
        raise RuntimeError("upstream down")

    queue.enqueue(boom, label="boom")
    queue.enqueue(lambda: ran.append("next"), label="next")

    run_next(queue)
    assert not queue.busy

    clock.now += 65
    run_next(queue)
    assert ran == ["next"]


def test_progress_messages(clock):
    progress = Mock()
    queue = DispatchQueue(cooldown=65, clock=clock, progress=progress)
    try:
        queue.enqueue(lambda: None, 42, wants_progress=True, label="EZE MAD 2024-10")
        progress.assert_not_called()

        queue.enqueue(lambda: None, 43, wants_progress=True, label="EZE GRU 2024-10")
        chat_id, text = progress.call_args.args
        assert chat_id == 43
        assert "posición 1" in text
        assert "65s" in text

        progress.reset_mock()
        run_next(queue)
        chat_id, text = progress.call_args.args
        assert chat_id == 42
        assert "EZE MAD 2024-10" in text
    finally:
        queue.shutdown()


def test_progress_failure_is_ignored(clock):
    progress = Mock(side_effect=RuntimeError("telegram down"))
    queue = DispatchQueue(cooldown=65, clock=clock, progress=progress)
    try:
        queue.enqueue(lambda: None, 1, wants_progress=True)
        ticket = queue.enqueue(lambda: None, 2, wants_progress=True)
        assert ticket.position == 1
    finally:
        queue.shutdown()


def test_start_registers_interval_job(queue):
    scheduler = Mock()

    queue.start(scheduler)

    args, kwargs = scheduler.add_job.call_args
    assert args == (queue.tick, "interval")
    assert kwargs["seconds"] == 0.5
    assert kwargs["id"] == "dispatch-queue-tick"
