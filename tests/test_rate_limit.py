"""Tests for request pacing with an injected clock."""
import pytest

from topiccluster.utils.rate_limit import RateLimiter


class FakeTime:
    def __init__(self):
        self.now = 100.0
        self.slept = []

    def clock(self):
        return self.now

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.now += seconds


def test_first_call_does_not_wait():
    fake = FakeTime()
    limiter = RateLimiter(2.0, clock=fake.clock, sleep=fake.sleep)
    assert limiter.wait() == 0.0
    assert fake.slept == []


def test_calls_are_spaced():
    fake = FakeTime()
    limiter = RateLimiter(2.0, clock=fake.clock, sleep=fake.sleep)
    limiter.wait()
    fake.now += 0.5

    assert limiter.wait() == pytest.approx(1.5)
    assert fake.slept == [pytest.approx(1.5)]


def test_no_wait_after_interval_elapsed():
    fake = FakeTime()
    limiter = RateLimiter(2.0, clock=fake.clock, sleep=fake.sleep)
    limiter.wait()
    fake.now += 3.0
    assert limiter.wait() == 0.0


def test_per_minute():
    assert RateLimiter.per_minute(30).min_interval == pytest.approx(2.0)
    assert RateLimiter.per_minute(0).min_interval == 0.0


def test_negative_interval_is_rejected():
    with pytest.raises(ValueError):
        RateLimiter(-1)
