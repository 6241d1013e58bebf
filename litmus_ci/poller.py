"""
Completion poller shared by every chaos status wait.

A poll session repeatedly calls a status-fetch function on a fixed interval until
the returned label is one of the terminal states or the timeout elapses. Fetch
failures are logged and retried on the next tick; only the timeout (or an explicit
stop signal) ends a session without a terminal state.
"""
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional

from rich.console import Console

from litmus_ci.errors import ExperimentFailedError, PollCancelledError, PollTimeoutError

console = Console()

# Terminal phases reported for experiment runs by the control plane
TERMINAL_PHASES = frozenset({
    'Completed',
    'Completed_With_Error',
    'Failed',
    'Error',
    'Stopped',
    'Skipped',
    'Aborted',
    'Timeout',
    'Terminated',
})
SUCCESS_PHASES = frozenset({'Completed'})

# Print every Nth poll (plus the first one and every state change)
PROGRESS_EVERY = 4

StatusFetch = Callable[[], Optional[str]]


@dataclass(frozen=True)
class PollRequest:
    """One polling session: what to watch, how often, for how long, and which labels end it"""
    resource_id: str
    poll_interval: float
    timeout: float
    terminal_states: FrozenSet[str] = TERMINAL_PHASES
    success_states: FrozenSet[str] = SUCCESS_PHASES

    def __post_init__(self):
        object.__setattr__(self, 'terminal_states', frozenset(self.terminal_states))
        object.__setattr__(self, 'success_states', frozenset(self.success_states))
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if not self.success_states <= self.terminal_states:
            extra = sorted(self.success_states - self.terminal_states)
            raise ValueError(f"success states {extra} are not terminal states")


@dataclass
class PollResult:
    """Outcome of a polling session"""
    resource_id: str
    final_state: str = ''
    succeeded: bool = False
    poll_error: Optional[Exception] = None
    polls: int = 0
    elapsed: float = 0.0
    last_state: Optional[str] = field(default=None, repr=False)

    def raise_for_outcome(self) -> 'PollResult':
        """Raise if the session timed out, was cancelled, or ended in a non-success state"""
        if self.poll_error is not None:
            raise self.poll_error
        if not self.succeeded:
            raise ExperimentFailedError(
                f"{self.resource_id} finished in state {self.final_state!r}",
                state=self.final_state,
            )
        return self


def poll_until_terminal(
    request: PollRequest,
    fetch: StatusFetch,
    clock: Callable[[], float] = time.monotonic,
    sleep: Optional[Callable[[float], None]] = None,
    stop_event: Optional[threading.Event] = None,
) -> PollResult:
    """
    Fetch status on every tick until a terminal state is seen or the timeout fires.

    Args:
        request: Resource, interval, timeout and terminal/success state sets
        fetch: Returns the current state label; ``None`` means no state yet.
            Any exception is treated as a transient read failure.
        clock: Monotonic clock in seconds
        sleep: Waits between ticks (default: ``time.sleep``, or the stop event's wait)
        stop_event: Optional signal that ends the session early

    Returns:
        PollResult. ``poll_error`` is set only on timeout or cancellation; a
        non-success terminal state is a valid outcome with ``succeeded=False``.
    """
    wait = _make_wait(sleep, stop_event)
    start = clock()
    deadline = start + request.timeout
    result = PollResult(resource_id=request.resource_id)
    tick = 0

    console.print(f"[cyan]Polling {request.resource_id} for a terminal state...[/cyan]")
    console.print(f"[dim]Timeout: {request.timeout:.0f}s, Poll interval: {request.poll_interval:.0f}s[/dim]")

    while True:
        tick += 1
        now = clock()
        next_tick = start + tick * request.poll_interval
        if next_tick <= now:
            # Fetch overran one or more ticks; drop them like a ticker does
            tick = int((now - start) // request.poll_interval) + 1
            next_tick = start + tick * request.poll_interval

        # The timer wins when it fires on the same instant as a tick
        if next_tick >= deadline:
            if deadline > now:
                wait(deadline - now)
            return _timed_out(result, request, clock() - start)

        if wait(next_tick - now) or (stop_event is not None and stop_event.is_set()):
            result.poll_error = PollCancelledError(f"Polling {request.resource_id} was cancelled")
            result.elapsed = clock() - start
            console.print(f"[yellow]Polling {request.resource_id} cancelled after {result.polls} polls[/yellow]")
            return result

        result.polls += 1
        elapsed = clock() - start
        try:
            state = fetch()
        except Exception as e:
            console.print(f"[yellow]Poll #{result.polls} of {request.resource_id} failed: {e}[/yellow]")
            continue

        if state != result.last_state or result.polls == 1 or result.polls % PROGRESS_EVERY == 0:
            shown = state if state is not None else 'not available yet'
            console.print(f"[dim]Poll #{result.polls} at {elapsed:.0f}s: {request.resource_id} is {shown}[/dim]")
        result.last_state = state

        if state is not None and state in request.terminal_states:
            result.final_state = state
            result.succeeded = state in request.success_states
            result.elapsed = clock() - start
            if result.succeeded:
                console.print(f"[green]✓ {request.resource_id} reached {state} (after {result.elapsed:.1f}s, {result.polls} polls)[/green]")
            else:
                console.print(f"[red]✗ {request.resource_id} reached {state} (after {result.elapsed:.1f}s, {result.polls} polls)[/red]")
            return result


def _make_wait(sleep, stop_event):
    """Return a wait(seconds) -> cancelled callable"""
    if sleep is not None:
        def wait(seconds):
            sleep(max(seconds, 0))
            return stop_event is not None and stop_event.is_set()
        return wait
    if stop_event is not None:
        return lambda seconds: stop_event.wait(max(seconds, 0))

    def wait(seconds):
        time.sleep(max(seconds, 0))
        return False
    return wait


def _timed_out(result: PollResult, request: PollRequest, elapsed: float) -> PollResult:
    result.final_state = ''
    result.succeeded = False
    result.elapsed = elapsed
    result.poll_error = PollTimeoutError(request.resource_id, request.timeout, result.last_state)
    console.print(f"[red]✗ {result.poll_error} ({result.polls} polls)[/red]")
    return result
