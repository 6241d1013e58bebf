"""
Print experiment and helper pod logs once the chaos pod has finished
"""
from typing import List, Optional

from kubernetes import client
from rich.console import Console

from litmus_ci.environment import ExperimentDetails
from litmus_ci.errors import ChaosCIError
from litmus_ci.poller import PollRequest, poll_until_terminal
from litmus_ci.status import ChaosEngineStatus, PodPhase

console = Console()

CHAOS_POD_POLL_INTERVAL = 10
# Running and Pending are the only phases worth waiting through
CHAOS_POD_TERMINAL = frozenset({'Succeeded', 'Failed', 'Unknown'})
CHAOS_POD_SUCCEEDED = frozenset({'Succeeded'})


def print_pod_logs(core_v1: client.CoreV1Api, pod_name: str, namespace: str) -> str:
    try:
        logs = core_v1.read_namespaced_pod_log(name=pod_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        raise ChaosCIError(f"Failed to print the logs of {pod_name} pod: {e.status} {e.reason}") from e

    console.print(f"\n[bold]{pod_name} logs:[/bold]\n")
    console.print(logs, markup=False, highlight=False)
    return logs


def chaos_pod_logs(details: ExperimentDetails, core_v1: client.CoreV1Api,
                   custom_objects_v1: client.CustomObjectsApi, **poll_kwargs) -> List[str]:
    """
    Wait for the experiment pod to finish and print its logs, followed by the logs of
    its helper pods.

    Returns:
        Names of the pods whose logs were printed
    """
    engine = ChaosEngineStatus(custom_objects_v1, details.chaos_namespace, details.engine_name, details.app_ns)
    chaos_pod = engine.first_experiment().get('expPod')
    if not chaos_pod:
        raise ChaosCIError(f"ChaosEngine {details.engine_name} has no experiment pod yet")

    request = PollRequest(
        resource_id=f"pod/{chaos_pod}",
        poll_interval=CHAOS_POD_POLL_INTERVAL,
        timeout=details.experiment_timeout_seconds,
        terminal_states=CHAOS_POD_TERMINAL,
        success_states=CHAOS_POD_SUCCEEDED,
    )
    pod_phase = PodPhase(core_v1, details.chaos_namespace, chaos_pod, details.app_ns)
    poll_until_terminal(request, pod_phase, **poll_kwargs).raise_for_outcome()

    console.print(f"[dim]Chaos pod name is: {chaos_pod} (namespace {pod_phase.namespace})[/dim]")
    print_pod_logs(core_v1, chaos_pod, pod_phase.namespace)
    printed = [chaos_pod]

    printed.extend(helper_pod_logs(details, core_v1, engine.uid(), pod_phase.namespace))
    return printed


def helper_pod_logs(details: ExperimentDetails, core_v1: client.CoreV1Api, chaos_uid: str,
                    namespace: Optional[str] = None) -> List[str]:
    """Print logs of ``{experiment}-helper`` pods labelled with this run's chaosUID"""
    namespace = namespace or details.chaos_namespace
    if details.job_cleanup_policy == 'delete':
        console.print("[dim]Helper pods are deleted by the job clean-up policy, skipping their logs[/dim]")
        return []

    pods = core_v1.list_namespaced_pod(namespace=namespace)
    printed = []
    for pod in pods.items:
        labels = pod.metadata.labels or {}
        if f"{details.experiment_name}-helper" not in pod.metadata.name or labels.get('chaosUID') != chaos_uid:
            continue
        try:
            print_pod_logs(core_v1, pod.metadata.name, namespace)
            printed.append(pod.metadata.name)
        except ChaosCIError as e:
            console.print(f"[yellow]⚠ Could not get logs of helper pod {pod.metadata.name}: {e}[/yellow]")
    return printed
