import random

import pytest

from notebridge.sync.model.errors import AuthenticationError, TransientNetworkError
from notebridge.sync.model.retry import backoff_delay, with_retry


class TestRetry:

    def test_backoff_delay(self):
        assert backoff_delay(0, jitter=False) == 0.5
        assert backoff_delay(1, jitter=False) == 1.0
        assert backoff_delay(2, jitter=False) == 2.0
        assert backoff_delay(10, jitter=False) == 8.0

        assert backoff_delay(10) == 8.0
        for _ in range(50):
            delay = backoff_delay(2)
            assert 2.0 <= delay < 3.0

    def test_backoff_delay_increases(self):
        for seed in range(200):
            random.seed(seed)
            delays = [backoff_delay(attempt) for attempt in range(4)]
            assert all(earlier < later for earlier, later in zip(delays, delays[1:]))

    def test_retry_delays_increase(self):
        for seed in range(50):
            random.seed(seed)
            delays = []

            @with_retry(max_retries=3, sleep=delays.append)
            def down():
                raise TransientNetworkError('503')

            with pytest.raises(TransientNetworkError):
                down()
            assert len(delays) == 3
            assert delays[0] < delays[1] < delays[2]

    def test_retries_then_succeeds(self):
        calls = []
        delays = []

        @with_retry(max_retries=3, jitter=False, sleep=delays.append)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransientNetworkError('timeout')
            return 'ok'

        assert flaky() == 'ok'
        assert len(calls) == 3
        assert delays == [0.5, 1.0]

    def test_gives_up(self):
        calls = []
        delays = []

        @with_retry(max_retries=3, jitter=False, sleep=delays.append)
        def down():
            calls.append(1)
            raise TransientNetworkError('503')

        with pytest.raises(TransientNetworkError):
            down()
        assert len(calls) == 4
        assert delays == [0.5, 1.0, 2.0]

    def test_no_retry_on_other_errors(self):
        calls = []

        @with_retry(max_retries=3, sleep=lambda delay: None)
        def rejected():
            calls.append(1)
            raise AuthenticationError('notes/')

        with pytest.raises(AuthenticationError):
            rejected()
        assert len(calls) == 1

    def test_zero_retries(self):
        calls = []

        @with_retry(max_retries=0, sleep=lambda delay: None)
        def down():
            calls.append(1)
            raise TransientNetworkError('503')

        with pytest.raises(TransientNetworkError):
            down()
        assert len(calls) == 1
