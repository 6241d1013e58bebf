"""
LitmusChaos CI helpers

This package installs Litmus, runs chaos experiments either as native
ChaosEngines or through ChaosCenter, and polls them to a pass/fail verdict.
"""

from .environment import ExperimentDetails
from .poller import PollRequest, PollResult, poll_until_terminal
from .runner import run_chaos_center_experiment, run_native_experiment

__version__ = '0.1.0'

__all__ = [
    'ExperimentDetails',
    'PollRequest',
    'PollResult',
    'poll_until_terminal',
    'run_chaos_center_experiment',
    'run_native_experiment',
]
