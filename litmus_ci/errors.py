"""
Exception types raised by the chaos CI harness
"""
from typing import Optional


class ChaosCIError(Exception):
    """Base class for harness errors"""


class ConfigurationError(ChaosCIError):
    """Required configuration is missing or invalid"""


class StatusReadError(ChaosCIError):
    """A single status read failed"""

    def __init__(self, message: str, not_found: bool = False):
        super().__init__(message)
        self.not_found = not_found


class RunNotVisibleError(StatusReadError):
    """The experiment run has not been listed by the control plane yet"""

    def __init__(self, experiment_id: str):
        super().__init__(f"No experiment run listed yet for experiment {experiment_id}", not_found=True)
        self.experiment_id = experiment_id


class PollTimeoutError(ChaosCIError, TimeoutError):
    """No terminal state was observed before the timeout"""

    def __init__(self, resource_id: str, timeout: float, last_state: Optional[str] = None):
        message = f"Timed out waiting for {resource_id} to reach a terminal state after {timeout:.0f}s"
        if last_state:
            message += f" (last observed state: {last_state})"
        super().__init__(message)
        self.resource_id = resource_id
        self.timeout = timeout
        self.last_state = last_state


class PollCancelledError(ChaosCIError):
    """Polling was stopped by the caller before a terminal state was observed"""


class ExperimentFailedError(ChaosCIError, AssertionError):
    """A chaos run reached a terminal state that is not a pass"""

    def __init__(self, message: str, state: Optional[str] = None):
        super().__init__(message)
        self.state = state


class ControlPlaneError(ChaosCIError):
    """The ChaosCenter API returned an error"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CommandError(ChaosCIError):
    """kubectl or helm exited with a non-zero status"""

    def __init__(self, command, returncode: int, stderr: str = ''):
        super().__init__(f"{' '.join(command)} failed with exit code {returncode}: {stderr.strip()}")
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
