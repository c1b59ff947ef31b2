from __future__ import annotations

import pytest

from projectagent.pacing import (
    Deadline,
    DeadlineExceeded,
    FixedIntervalPacer,
    NoPacing,
    make_pacer,
)


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_first_wait_does_not_sleep():
    clock = FakeClock()
    pacer = FixedIntervalPacer(2.0, clock=clock, sleep=clock.sleep)

    pacer.wait()

    assert clock.sleeps == []


def test_wait_sleeps_remaining_interval():
    clock = FakeClock()
    pacer = FixedIntervalPacer(2.0, clock=clock, sleep=clock.sleep)

    pacer.wait()
    clock.now += 0.5
    pacer.wait()

    assert clock.sleeps == [1.5]


def test_wait_does_not_sleep_when_interval_elapsed():
    clock = FakeClock()
    pacer = FixedIntervalPacer(1.0, clock=clock, sleep=clock.sleep)

    pacer.wait()
    clock.now += 5
    pacer.wait()

    assert clock.sleeps == []


def test_make_pacer_zero_disables():
    assert isinstance(make_pacer(0), NoPacing)
    assert isinstance(make_pacer(1.0), FixedIntervalPacer)


def test_deadline_without_seconds_never_expires():
    deadline = Deadline()

    assert deadline.remaining() is None
    assert not deadline.expired
    deadline.check("anything")


def test_deadline_expires():
    clock = FakeClock()
    deadline = Deadline(10, clock=clock)

    assert deadline.remaining() == 10
    deadline.check()

    clock.now += 10
    assert deadline.expired
    assert deadline.remaining() == 0
    with pytest.raises(DeadlineExceeded, match="move issue #3"):
        deadline.check("move issue #3")
