"""
End-to-end chaos experiment flows.

Two paths are supported:

* native: the ChaosEngine is created straight through the Kubernetes API and the
  runner pod, chaos pod, ChaosResult and ChaosEngine are watched in-cluster;
* ChaosCenter: an Argo Workflow is saved and triggered through the control plane
  and the experiment run phase is polled remotely.

Clean-up always runs, whatever the poll outcome.
"""
from typing import Optional

from kubernetes import client
from rich.console import Console

from litmus_ci.clients import KubeClients, create_litmus_object, delete_litmus_object
from litmus_ci.control_plane import ChaosCenterClient
from litmus_ci.environment import ExperimentDetails
from litmus_ci.errors import ConfigurationError
from litmus_ci.infrastructure import create_probe, release_infrastructure, setup_infrastructure
from litmus_ci.kubectl import apply_manifest, install_rbac
from litmus_ci.manifests import (
    ExperimentConfig, FaultSpec, build_chaos_engine, build_chaos_experiment, build_experiment_request,
    generate_experiment_id, generate_unique_experiment_name, get_fault
)
from litmus_ci.pod_logs import chaos_pod_logs
from litmus_ci.poller import PollResult
from litmus_ci.verdict import chaos_engine_verdict, chaos_result_verdict, experiment_run_verdict
from litmus_ci.waiters import wait_for_chaos_pod_running, wait_for_experiment_run, wait_for_runner_pod_running

console = Console()


def cleanup_chaos_engine(details: ExperimentDetails, custom_objects_v1: client.CustomObjectsApi) -> bool:
    """Best-effort ChaosEngine delete from CHAOS_NAMESPACE or APP_NS; failures are reported, not raised"""
    for namespace in dict.fromkeys([details.chaos_namespace, details.app_ns]):
        try:
            deleted = delete_litmus_object(custom_objects_v1, 'chaosengines', namespace, details.engine_name)
        except client.exceptions.ApiException as e:
            console.print(f"[yellow]⚠ Could not delete chaosengine {details.engine_name}: {e.status} {e.reason}[/yellow]")
            return False
        if deleted:
            console.print(f"[dim]Deleted chaosengine {details.engine_name} from {namespace}[/dim]")
            return True
    return False


def run_native_experiment(details: ExperimentDetails, clients: KubeClients, fault: Optional[FaultSpec] = None,
                          probe_name: Optional[str] = None, **poll_kwargs) -> str:
    """
    Run one fault through a native ChaosEngine and assert it passed.

    Returns:
        The ChaosEngine verdict (always 'Pass'; anything else raises)
    """
    fault = fault or get_fault(details.experiment_name)
    console.print(f"[bold cyan]Running {fault.name} ({details.describe()})[/bold cyan]")

    install_rbac(details.rbac_path, details.chaos_namespace, details.experiment_name)
    apply_manifest(build_chaos_experiment(fault, details), details.chaos_namespace)
    create_litmus_object(
        clients.custom_objects_v1, 'chaosengines', details.chaos_namespace,
        build_chaos_engine(details, fault, probe_name)
    )
    console.print(f"[green]✓ ChaosEngine {details.engine_name} created[/green]")

    try:
        wait_for_runner_pod_running(details, clients.core_v1, **poll_kwargs)
        wait_for_chaos_pod_running(details, clients.custom_objects_v1, **poll_kwargs)
        chaos_pod_logs(details, clients.core_v1, clients.custom_objects_v1, **poll_kwargs)
        chaos_result_verdict(details, clients.custom_objects_v1, **poll_kwargs)
        return chaos_engine_verdict(details, clients.custom_objects_v1, **poll_kwargs)
    finally:
        cleanup_chaos_engine(details, clients.custom_objects_v1)


def run_control_plane_experiment(details: ExperimentDetails, control_plane: ChaosCenterClient, infra_id: str,
                                 fault: FaultSpec, config: Optional[ExperimentConfig] = None,
                                 probe_name: Optional[str] = None, **poll_kwargs) -> PollResult:
    """Save, trigger and poll one ChaosCenter experiment; the result is returned unclassified"""
    experiment_name = generate_unique_experiment_name(fault.name)
    experiment_id = generate_experiment_id()
    console.print(f"[cyan]Constructing experiment {experiment_name} ({experiment_id}) on infra {infra_id}[/cyan]")

    request = build_experiment_request(details, infra_id, experiment_id, experiment_name, fault, config, probe_name)
    control_plane.save_experiment(request)
    control_plane.run_experiment(experiment_id)
    console.print(f"[green]✓ Experiment {experiment_name} triggered[/green]")

    return wait_for_experiment_run(details, control_plane, experiment_id, **poll_kwargs)


def run_chaos_center_experiment(details: ExperimentDetails, control_plane: ChaosCenterClient,
                                fault: Optional[FaultSpec] = None, config: Optional[ExperimentConfig] = None,
                                **poll_kwargs) -> str:
    """Set up infrastructure, run the experiment, require Completed, then disconnect"""
    fault = fault or get_fault(details.experiment_name)
    connection = setup_infrastructure(details, control_plane, **poll_kwargs)
    try:
        if not connection.connected:
            raise ConfigurationError("No chaos infrastructure is connected: set INSTALL_INFRA or EXISTING_INFRA_ID")
        probe_name = create_probe(details, control_plane)
        result = run_control_plane_experiment(
            details, control_plane, connection.infra_id, fault, config, probe_name, **poll_kwargs
        )
        return experiment_run_verdict(result)
    finally:
        release_infrastructure(details, control_plane, connection)
