"""
Verdict checks run after chaos has been injected
"""
from kubernetes import client
from rich.console import Console

from litmus_ci.environment import ExperimentDetails
from litmus_ci.errors import ExperimentFailedError
from litmus_ci.poller import PollResult
from litmus_ci.status import ChaosEngineStatus, ChaosResultVerdict
from litmus_ci.waiters import wait_for_chaos_result_completion, wait_for_engine_completion

console = Console()

PASS = 'Pass'


def chaos_result_verdict(details: ExperimentDetails, custom_objects_v1: client.CustomObjectsApi,
                         **poll_kwargs) -> str:
    """Wait for the ChaosResult to complete, then require a Pass verdict"""
    wait_for_chaos_result_completion(details, custom_objects_v1, **poll_kwargs)

    verdict = ChaosResultVerdict(
        custom_objects_v1, details.chaos_namespace, details.chaos_result_name, details.app_ns
    )()
    console.print(f"[cyan]Chaos Result Verdict is: {verdict}[/cyan]")
    if verdict != PASS:
        raise ExperimentFailedError(
            f"ChaosResult {details.chaos_result_name} verdict is {verdict!r}, expected {PASS!r}",
            state=verdict,
        )
    console.print(f"[green]✓ ChaosResult {details.chaos_result_name} passed[/green]")
    return verdict


def chaos_engine_verdict(details: ExperimentDetails, custom_objects_v1: client.CustomObjectsApi,
                         **poll_kwargs) -> str:
    """Wait for the ChaosEngine to complete, then require its experiment verdict to be Pass"""
    wait_for_engine_completion(details, custom_objects_v1, **poll_kwargs)

    verdict = ChaosEngineStatus(
        custom_objects_v1, details.chaos_namespace, details.engine_name, details.app_ns
    ).verdict()
    console.print(f"[cyan]Chaos Engine Verdict is: {verdict}[/cyan]")
    if verdict != PASS:
        raise ExperimentFailedError(
            f"ChaosEngine {details.engine_name} verdict is {verdict!r}, expected {PASS!r}",
            state=verdict,
        )
    console.print(f"[green]✓ ChaosEngine {details.engine_name} passed[/green]")
    return verdict


def experiment_run_verdict(result: PollResult) -> str:
    """Require a control-plane run to have ended in Completed; returns the final phase"""
    result.raise_for_outcome()
    console.print(f"[green]✓ Experiment run {result.resource_id} phase is {result.final_state}[/green]")
    return result.final_state
