"""
Status sources for the completion poller.

Each adapter is a read-only callable returning the current state label, ``None``
when the resource has no state yet, or raising StatusReadError when the read
fails. None of them retry; the poller owns all timing.
"""
from typing import Any, Dict, Optional, Sequence

from kubernetes import client
from rich.console import Console

from litmus_ci.clients import get_litmus_object
from litmus_ci.control_plane import ChaosCenterClient
from litmus_ci.errors import RunNotVisibleError, StatusReadError

console = Console()


def _read_error(kind: str, name: str, e: client.exceptions.ApiException) -> StatusReadError:
    if e.status == 404:
        return StatusReadError(f"{kind} {name} not found", not_found=True)
    return StatusReadError(f"Could not read {kind} {name}: API error {e.status} {e.reason}")


class _LitmusObjectStatus:
    """Reads a litmuschaos.io object, trying the chaos namespace first"""
    kind = ''
    plural = ''

    def __init__(self, custom_objects_v1: client.CustomObjectsApi, namespace: str, name: str,
                 fallback_namespace: Optional[str] = None):
        self.custom_objects_v1 = custom_objects_v1
        self.namespaces: Sequence[str] = [namespace] + (
            [fallback_namespace] if fallback_namespace and fallback_namespace != namespace else []
        )
        self.name = name

    def read(self) -> Dict[str, Any]:
        error = None
        for namespace in self.namespaces:
            try:
                return get_litmus_object(self.custom_objects_v1, self.plural, namespace, self.name)
            except client.exceptions.ApiException as e:
                error = _read_error(self.kind, self.name, e)
                if not error.not_found:
                    raise error from e
        raise error

    def status(self) -> Dict[str, Any]:
        return self.read().get('status') or {}


class ChaosEngineStatus(_LitmusObjectStatus):
    """``status.engineStatus`` of a ChaosEngine (initialized, completed, stopped)"""
    kind = 'ChaosEngine'
    plural = 'chaosengines'

    def __call__(self) -> Optional[str]:
        return self.status().get('engineStatus') or None

    def first_experiment(self) -> Dict[str, Any]:
        experiments = self.status().get('experiments') or []
        return experiments[0] if experiments else {}

    def experiment_status(self) -> Optional[str]:
        """Status of the engine's first experiment; None while the experiment is initializing"""
        experiment = self.first_experiment()
        if not experiment.get('expPod'):
            return None
        return experiment.get('status') or None

    def verdict(self) -> Optional[str]:
        return self.first_experiment().get('verdict') or None

    def uid(self) -> str:
        return self.read().get('metadata', {}).get('uid', '')


class ChaosResultVerdict(_LitmusObjectStatus):
    """``status.experimentStatus.verdict`` of a ChaosResult (Awaited, Pass, Fail, Stopped)"""
    kind = 'ChaosResult'
    plural = 'chaosresults'

    def experiment_status(self) -> Dict[str, Any]:
        return self.status().get('experimentStatus') or {}

    def __call__(self) -> Optional[str]:
        return self.experiment_status().get('verdict') or None

    def phase(self) -> Optional[str]:
        return self.experiment_status().get('phase') or None


class PodPhase:
    """
    ``.status.phase`` of a named Pod.

    With a fallback namespace the pod is looked up there on a 404, and
    ``namespace`` is updated to wherever it was last found.
    """

    def __init__(self, core_v1: client.CoreV1Api, namespace: str, pod_name: str,
                 fallback_namespace: Optional[str] = None):
        self.core_v1 = core_v1
        self.namespace = namespace
        self.namespaces: Sequence[str] = [namespace] + (
            [fallback_namespace] if fallback_namespace and fallback_namespace != namespace else []
        )
        self.pod_name = pod_name

    def __call__(self) -> Optional[str]:
        error = None
        for namespace in self.namespaces:
            try:
                pod = self.core_v1.read_namespaced_pod(name=self.pod_name, namespace=namespace)
            except client.exceptions.ApiException as e:
                error = _read_error('Pod', self.pod_name, e)
                if not error.not_found:
                    raise error from e
                continue
            self.namespace = namespace
            return pod.status.phase or None
        raise error


class LabelledPodsPhase:
    """Aggregate phase of the pods matching a label selector: Running only when all of them are"""

    def __init__(self, core_v1: client.CoreV1Api, namespace: str, label_selector: str):
        self.core_v1 = core_v1
        self.namespace = namespace
        self.label_selector = label_selector

    def __call__(self) -> Optional[str]:
        try:
            pods = self.core_v1.list_namespaced_pod(namespace=self.namespace, label_selector=self.label_selector)
        except client.exceptions.ApiException as e:
            raise _read_error('Pods', self.label_selector, e) from e

        if not pods.items:
            return None
        not_running = [p for p in pods.items if p.status.phase != 'Running']
        for pod in not_running:
            console.print(f"[dim]      • {pod.metadata.name}: {pod.status.phase}[/dim]")
        if not_running:
            return not_running[0].status.phase
        return 'Running'


class RemoteRunPhase:
    """
    Phase of the newest run of a control-plane experiment.

    The run ID is resolved lazily: until the control plane lists a run for the
    experiment, each call raises RunNotVisibleError, which the poller treats as a
    transient read failure.
    """

    def __init__(self, control_plane: ChaosCenterClient, experiment_id: str, run_id: str = ''):
        self.control_plane = control_plane
        self.experiment_id = experiment_id
        self.run_id = run_id

    def resolve_run_id(self) -> str:
        if not self.run_id:
            runs = self.control_plane.list_experiment_runs(self.experiment_id)
            if not runs or not runs[0].get('experimentRunID'):
                raise RunNotVisibleError(self.experiment_id)
            self.run_id = runs[0]['experimentRunID']
            console.print(f"[dim]Latest experiment run ID: {self.run_id}[/dim]")
        return self.run_id

    def __call__(self) -> Optional[str]:
        run_id = self.resolve_run_id()
        return self.control_plane.get_run_phase(run_id) or None
