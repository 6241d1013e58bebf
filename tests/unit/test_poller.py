"""
Unit tests for the completion poller, driven by a fake clock
"""
import threading

import pytest

from litmus_ci.errors import ExperimentFailedError, PollCancelledError, PollTimeoutError
from litmus_ci.poller import (
    SUCCESS_PHASES, TERMINAL_PHASES, PollRequest, PollResult, poll_until_terminal
)


def sequence(*states):
    """fetch() returning the given states in order; exceptions in the list are raised"""
    remaining = list(states)
    calls = []

    def fetch():
        calls.append(len(calls) + 1)
        state = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(state, Exception):
            raise state
        return state
    fetch.calls = calls
    return fetch


def request(interval=1, timeout=10, **kwargs):
    return PollRequest(resource_id='experiment/test', poll_interval=interval, timeout=timeout, **kwargs)


@pytest.mark.unit
class TestPollRequest:

    def test_defaults_use_control_plane_vocabulary(self):
        req = request()
        assert req.terminal_states == TERMINAL_PHASES
        assert req.success_states == frozenset({'Completed'})
        assert len(TERMINAL_PHASES) == 9

    def test_sets_are_frozen(self):
        req = request(terminal_states={'done', 'failed'}, success_states=['done'])
        assert isinstance(req.terminal_states, frozenset)
        assert isinstance(req.success_states, frozenset)

    @pytest.mark.parametrize('interval,timeout', [(0, 10), (-1, 10), (1, 0), (1, -5)])
    def test_rejects_non_positive_timing(self, interval, timeout):
        with pytest.raises(ValueError):
            request(interval=interval, timeout=timeout)

    def test_success_states_must_be_terminal(self):
        with pytest.raises(ValueError, match='not terminal'):
            request(terminal_states={'Failed'}, success_states={'Completed'})


@pytest.mark.unit
class TestScenarios:

    def test_scenario_a_timeout_of_one_tick(self, poll_kwargs, fake_clock):
        """timeout == interval: the timer wins, no terminal state is ever seen"""
        fetch = sequence('Running')
        result = poll_until_terminal(request(interval=1, timeout=1), fetch, **poll_kwargs)

        assert isinstance(result.poll_error, PollTimeoutError)
        assert result.final_state == ''
        assert result.succeeded is False
        assert fake_clock.elapsed == 1

    def test_scenario_b_running_then_completed(self, poll_kwargs):
        fetch = sequence('Running', 'Completed')
        result = poll_until_terminal(request(), fetch, **poll_kwargs)

        assert result.succeeded is True
        assert result.final_state == 'Completed'
        assert result.poll_error is None
        assert result.polls == 2

    def test_scenario_c_aborted_is_a_classified_failure(self, poll_kwargs):
        fetch = sequence('Aborted')
        result = poll_until_terminal(request(), fetch, **poll_kwargs)

        assert result.succeeded is False
        assert result.poll_error is None
        assert result.final_state == 'Aborted'
        assert result.polls == 1

    def test_scenario_d_transient_errors_then_completed(self, poll_kwargs):
        fetch = sequence(ConnectionError('boom'), ConnectionError('boom'), ConnectionError('boom'), 'Completed')
        result = poll_until_terminal(request(interval=1, timeout=5), fetch, **poll_kwargs)

        assert result.succeeded is True
        assert result.final_state == 'Completed'
        assert result.poll_error is None
        assert fetch.calls == [1, 2, 3, 4]


@pytest.mark.unit
class TestProperties:

    @pytest.mark.parametrize('terminal', sorted(TERMINAL_PHASES))
    def test_terminal_state_is_reported_verbatim(self, poll_kwargs, terminal):
        result = poll_until_terminal(request(), sequence('Running', terminal), **poll_kwargs)

        assert result.poll_error is None
        assert result.final_state == terminal
        assert result.succeeded == (terminal in SUCCESS_PHASES)

    def test_only_completed_succeeds(self, poll_kwargs):
        result = poll_until_terminal(request(), sequence('Completed_With_Error'), **poll_kwargs)
        assert result.succeeded is False

    def test_timeout_with_only_non_terminal_states(self, poll_kwargs):
        result = poll_until_terminal(request(interval=1, timeout=5), sequence('Running'), **poll_kwargs)

        assert isinstance(result.poll_error, PollTimeoutError)
        assert result.final_state == ''
        assert result.polls == 4
        assert result.poll_error.last_state == 'Running'

    def test_timeout_with_only_fetch_errors(self, poll_kwargs):
        fetch = sequence(RuntimeError('api down'))
        result = poll_until_terminal(request(interval=2, timeout=9), fetch, **poll_kwargs)

        assert isinstance(result.poll_error, PollTimeoutError)
        assert result.final_state == ''
        assert len(fetch.calls) == 4

    def test_fetch_errors_never_become_the_poll_error(self, poll_kwargs):
        fetch = sequence(RuntimeError('one'), ValueError('two'), 'Failed')
        result = poll_until_terminal(request(), fetch, **poll_kwargs)

        assert result.poll_error is None
        assert result.final_state == 'Failed'

    def test_no_early_return_on_intermediate_states(self, poll_kwargs):
        fetch = sequence('Pending', 'Running', 'Running', 'Running', 'Running', 'Completed')
        result = poll_until_terminal(request(interval=1, timeout=60), fetch, **poll_kwargs)

        assert result.polls == 6
        assert result.final_state == 'Completed'

    def test_none_means_no_state_yet(self, poll_kwargs):
        result = poll_until_terminal(request(), sequence(None, None, 'Completed'), **poll_kwargs)
        assert result.polls == 3
        assert result.succeeded is True

    def test_stops_fetching_after_terminal_state(self, poll_kwargs):
        fetch = sequence('Stopped', 'Completed')
        poll_until_terminal(request(), fetch, **poll_kwargs)
        assert fetch.calls == [1]

    def test_custom_vocabulary(self, poll_kwargs):
        req = request(terminal_states={'completed', 'stopped'}, success_states={'completed'})
        result = poll_until_terminal(req, sequence('initialized', 'Completed', 'completed'), **poll_kwargs)
        assert result.final_state == 'completed'
        assert result.polls == 3


@pytest.mark.unit
class TestTicker:

    def test_first_fetch_after_first_tick(self, poll_kwargs, fake_clock):
        seen = []

        def fetch():
            seen.append(fake_clock.elapsed)
            return 'Completed' if len(seen) == 3 else 'Running'

        poll_until_terminal(request(interval=5, timeout=60), fetch, **poll_kwargs)
        assert seen == [5, 10, 15]

    def test_overrunning_fetch_drops_missed_ticks(self, poll_kwargs, fake_clock):
        def fetch():
            fake_clock.advance(5)
            return 'Running'

        result = poll_until_terminal(request(interval=2, timeout=20), fetch, **poll_kwargs)

        assert fake_clock.sleeps == [2, 1, 1, 1]
        assert result.polls == 3
        assert isinstance(result.poll_error, PollTimeoutError)

    def test_sessions_share_no_state(self, poll_kwargs):
        first = poll_until_terminal(request(), sequence('Completed'), **poll_kwargs)
        second = poll_until_terminal(request(), sequence('Failed'), **poll_kwargs)
        assert (first.final_state, second.final_state) == ('Completed', 'Failed')
        assert first is not second


@pytest.mark.unit
class TestCancellation:

    def test_stop_event_ends_session_before_next_fetch(self, poll_kwargs):
        stop = threading.Event()
        calls = []

        def fetch():
            calls.append(1)
            if len(calls) == 2:
                stop.set()
            return 'Running'

        result = poll_until_terminal(request(), fetch, stop_event=stop, **poll_kwargs)

        assert isinstance(result.poll_error, PollCancelledError)
        assert result.final_state == ''
        assert len(calls) == 2

    def test_already_set_event_never_fetches(self, poll_kwargs):
        stop = threading.Event()
        stop.set()
        fetch = sequence('Completed')

        result = poll_until_terminal(request(), fetch, stop_event=stop, **poll_kwargs)

        assert isinstance(result.poll_error, PollCancelledError)
        assert fetch.calls == []

    def test_event_wait_is_used_without_injected_sleep(self):
        stop = threading.Event()
        stop.set()
        result = poll_until_terminal(request(interval=30, timeout=60), sequence('Running'), stop_event=stop)
        assert isinstance(result.poll_error, PollCancelledError)


@pytest.mark.unit
class TestRaiseForOutcome:

    def test_success_returns_result(self):
        result = PollResult(resource_id='x', final_state='Completed', succeeded=True)
        assert result.raise_for_outcome() is result

    def test_failure_raises_with_state(self):
        result = PollResult(resource_id='x', final_state='Aborted')
        with pytest.raises(ExperimentFailedError) as excinfo:
            result.raise_for_outcome()
        assert excinfo.value.state == 'Aborted'
        assert isinstance(excinfo.value, AssertionError)

    def test_timeout_is_reraised(self):
        error = PollTimeoutError('x', 60)
        result = PollResult(resource_id='x', poll_error=error)
        with pytest.raises(PollTimeoutError):
            result.raise_for_outcome()
