import pytest

from sources import RetryPolicy, UpstreamError, is_retryable_status


class Flaky:
    """Fails with the given errors in order, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def test_retryable_statuses():
    assert is_retryable_status(None)
    assert is_retryable_status(429)
    assert is_retryable_status(500)
    assert is_retryable_status(503)
    assert not is_retryable_status(400)
    assert not is_retryable_status(403)
    assert not is_retryable_status(404)


def test_from_status_flags_retryable():
    assert UpstreamError.from_status(502).retryable
    assert not UpstreamError.from_status(404).retryable
    assert UpstreamError.from_status(404).status == 404


def test_delay_schedule_doubles():
    assert RetryPolicy(max_attempts=3, base_delay=1.0).delays() == [1.0, 2.0]
    assert RetryPolicy(max_attempts=1).delays() == []


def test_succeeds_after_two_failures(sleeper):
    fn = Flaky(UpstreamError.from_status(500), UpstreamError.from_status(500))
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, sleep=sleeper)

    assert policy.call(fn) == "ok"
    assert fn.calls == 3
    assert sleeper.delays == [1.0, 2.0]


def test_exhaustion_reraises_last_error(sleeper):
    last = UpstreamError.from_status(503)
    fn = Flaky(UpstreamError.from_status(500), UpstreamError.from_status(429), last)
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, sleep=sleeper)

    with pytest.raises(UpstreamError) as exc_info:
        policy.call(fn)

    assert exc_info.value is last
    assert fn.calls == 3
    assert sleeper.delays == [1.0, 2.0]


def test_permanent_error_is_not_retried(sleeper):
    fn = Flaky(UpstreamError.from_status(404))
    policy = RetryPolicy(sleep=sleeper)

    with pytest.raises(UpstreamError):
        policy.call(fn)

    assert fn.calls == 1
    assert sleeper.delays == []


def test_transport_error_is_retried(sleeper):
    fn = Flaky(UpstreamError("connection reset", retryable=True))
    policy = RetryPolicy(sleep=sleeper)

    assert policy.call(fn) == "ok"
    assert sleeper.delays == [1.0]


def test_custom_predicate(sleeper):
    fn = Flaky(UpstreamError.from_status(429))
    policy = RetryPolicy(retryable=lambda status: status is not None and status >= 500, sleep=sleeper)

    with pytest.raises(UpstreamError):
        policy.call(fn)

    assert fn.calls == 1


def test_custom_predicate_can_retry_4xx(sleeper):
    fn = Flaky(UpstreamError.from_status(408))
    policy = RetryPolicy(retryable=lambda status: status in (408, 429) or status >= 500, sleep=sleeper)

    assert policy.call(fn) == "ok"
    assert fn.calls == 2
    assert sleeper.delays == [1.0]


def test_other_exceptions_propagate(sleeper):
    def boom():
        raise KeyError("data")

    with pytest.raises(KeyError):
        RetryPolicy(sleep=sleeper).call(boom)
    assert sleeper.delays == []
