"""
Completion waits for chaos resources, each one a status source plus a poll session
"""
from kubernetes import client

from litmus_ci.control_plane import ChaosCenterClient
from litmus_ci.environment import ExperimentDetails
from litmus_ci.poller import (
    SUCCESS_PHASES, TERMINAL_PHASES, PollRequest, PollResult, poll_until_terminal
)
from litmus_ci.status import (
    ChaosEngineStatus, ChaosResultVerdict, LabelledPodsPhase, PodPhase, RemoteRunPhase
)

RUNNER_TERMINAL = frozenset({'Running', 'Succeeded', 'Failed'})
RUNNER_RUNNING = frozenset({'Running', 'Succeeded'})

EXPERIMENT_TERMINAL = frozenset({'Running', 'Completed', 'Stopped', 'Aborted'})
EXPERIMENT_RUNNING = frozenset({'Running', 'Completed'})

ENGINE_TERMINAL = frozenset({'completed', 'stopped'})
ENGINE_COMPLETED = frozenset({'completed'})

POD_FINISHED = frozenset({'Succeeded', 'Failed'})
POD_SUCCEEDED = frozenset({'Succeeded'})

RESULT_TERMINAL = frozenset({'Completed', 'Stopped', 'Error'})
RESULT_COMPLETED = frozenset({'Completed'})

RUNNING = frozenset({'Running'})


def _local_request(details: ExperimentDetails, resource_id: str, terminal, success) -> PollRequest:
    interval, timeout = details.local_poll_settings()
    return PollRequest(
        resource_id=resource_id,
        poll_interval=interval,
        timeout=timeout,
        terminal_states=terminal,
        success_states=success,
    )


def _wait(request: PollRequest, fetch, **poll_kwargs) -> PollResult:
    return poll_until_terminal(request, fetch, **poll_kwargs).raise_for_outcome()


def wait_for_runner_pod_running(details: ExperimentDetails, core_v1: client.CoreV1Api, **poll_kwargs) -> PollResult:
    """Wait until the ``{engine}-runner`` pod is running"""
    request = _local_request(details, f"pod/{details.runner_pod_name}", RUNNER_TERMINAL, RUNNER_RUNNING)
    return _wait(request, PodPhase(core_v1, details.chaos_namespace, details.runner_pod_name), **poll_kwargs)


def wait_for_chaos_pod_running(details: ExperimentDetails, custom_objects_v1: client.CustomObjectsApi,
                               **poll_kwargs) -> PollResult:
    """Wait until the engine reports its experiment pod as running"""
    engine = ChaosEngineStatus(custom_objects_v1, details.chaos_namespace, details.engine_name, details.app_ns)
    request = _local_request(
        details, f"chaosengine/{details.engine_name} experiment", EXPERIMENT_TERMINAL, EXPERIMENT_RUNNING
    )
    return _wait(request, engine.experiment_status, **poll_kwargs)


def wait_for_app_pods_running(details: ExperimentDetails, core_v1: client.CoreV1Api, **poll_kwargs) -> PollResult:
    """Wait until every pod selected by APP_LABEL in APP_NS is running"""
    request = _local_request(details, f"pods {details.app_label} in {details.app_ns}", RUNNING, RUNNING)
    return _wait(request, LabelledPodsPhase(core_v1, details.app_ns, details.app_label), **poll_kwargs)


def wait_for_engine_completion(details: ExperimentDetails, custom_objects_v1: client.CustomObjectsApi,
                               **poll_kwargs) -> PollResult:
    engine = ChaosEngineStatus(custom_objects_v1, details.chaos_namespace, details.engine_name, details.app_ns)
    request = _local_request(details, f"chaosengine/{details.engine_name}", ENGINE_TERMINAL, ENGINE_COMPLETED)
    return _wait(request, engine, **poll_kwargs)


def wait_for_runner_completion(details: ExperimentDetails, core_v1: client.CoreV1Api, **poll_kwargs) -> PollResult:
    request = _local_request(details, f"pod/{details.runner_pod_name}", POD_FINISHED, POD_SUCCEEDED)
    return _wait(request, PodPhase(core_v1, details.chaos_namespace, details.runner_pod_name), **poll_kwargs)


def wait_for_chaos_result_completion(details: ExperimentDetails, custom_objects_v1: client.CustomObjectsApi,
                                     **poll_kwargs) -> PollResult:
    """Wait until the ChaosResult phase is Completed"""
    result = ChaosResultVerdict(
        custom_objects_v1, details.chaos_namespace, details.chaos_result_name, details.app_ns
    )
    request = _local_request(details, f"chaosresult/{details.chaos_result_name}", RESULT_TERMINAL, RESULT_COMPLETED)
    return _wait(request, result.phase, **poll_kwargs)


def wait_for_experiment_run(details: ExperimentDetails, control_plane: ChaosCenterClient, experiment_id: str,
                            **poll_kwargs) -> PollResult:
    """
    Poll the newest run of a control-plane experiment until it reaches a terminal phase.

    Unlike the in-cluster waits this does not raise on a failed run; the caller
    classifies the returned PollResult (see verdict.experiment_run_verdict).

    Args:
        details: Supplies EXPERIMENT_POLLING_INTERVAL (seconds) and EXPERIMENT_TIMEOUT (minutes)
        control_plane: Logged-in ChaosCenter client
        experiment_id: ID of the saved and triggered experiment
        **poll_kwargs: clock / sleep / stop_event passed to the poller
    """
    request = PollRequest(
        resource_id=f"experiment/{experiment_id}",
        poll_interval=details.experiment_polling_interval,
        timeout=details.experiment_timeout_seconds,
        terminal_states=TERMINAL_PHASES,
        success_states=SUCCESS_PHASES,
    )
    return poll_until_terminal(request, RemoteRunPhase(control_plane, experiment_id), **poll_kwargs)
