"""
Chaos manifests: native ChaosEngine / ChaosExperiment objects and the Argo Workflow
submitted to ChaosCenter.

Per-fault tunables live in the FAULTS registry. Each FaultSpec maps
ExperimentDetails to the experiment env it needs; empty values are left out so
the experiment falls back to its own defaults.
"""
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import yaml

from litmus_ci.clients import LITMUS_GROUP, LITMUS_VERSION
from litmus_ci.environment import ExperimentDetails
from litmus_ci.errors import ConfigurationError

LITMUS_API_VERSION = f"{LITMUS_GROUP}/{LITMUS_VERSION}"

WORKFLOW_NAMESPACE = 'litmus-2'
WORKFLOW_SERVICE_ACCOUNT = 'argo-chaos'
WORKFLOW_CHAOS_SERVICE_ACCOUNT = 'litmus-admin'
# Argo resolves these when the workflow runs
WORKFLOW_UID = '{{ workflow.uid }}'
ADMIN_NAMESPACE = '{{workflow.parameters.adminModeNamespace}}'

K8S_IMAGE = 'litmuschaos/k8s:2.11.0'
CHECKER_IMAGE = 'docker.io/litmuschaos/litmus-checker:2.11.0'
GO_RUNNER_IMAGE = 'litmuschaos.docker.scarf.sh/litmuschaos/go-runner:3.16.0'

EXPERIMENT_PERMISSIONS = [
    {'apiGroups': [''], 'resources': ['pods'],
     'verbs': ['create', 'delete', 'get', 'list', 'patch', 'update', 'deletecollection']},
    {'apiGroups': [''], 'resources': ['events'], 'verbs': ['create', 'get', 'list', 'patch', 'update']},
    {'apiGroups': [''], 'resources': ['configmaps'], 'verbs': ['get', 'list']},
    {'apiGroups': [''], 'resources': ['pods/log'], 'verbs': ['get', 'list', 'watch']},
    {'apiGroups': [''], 'resources': ['pods/exec'], 'verbs': ['get', 'list', 'create']},
    {'apiGroups': ['apps'], 'resources': ['deployments', 'statefulsets', 'replicasets', 'daemonsets'],
     'verbs': ['list', 'get']},
    {'apiGroups': ['batch'], 'resources': ['jobs'],
     'verbs': ['create', 'list', 'get', 'delete', 'deletecollection']},
    {'apiGroups': [LITMUS_GROUP], 'resources': ['chaosengines', 'chaosexperiments', 'chaosresults'],
     'verbs': ['create', 'list', 'get', 'patch', 'update', 'delete']},
]
NODE_PERMISSIONS = [
    {'apiGroups': [''], 'resources': ['nodes'], 'verbs': ['get', 'list']},
]


@dataclass(frozen=True)
class FaultSpec:
    name: str
    description: str
    env_builder: Callable[[ExperimentDetails], Dict[str, Any]]
    scope: str = 'Namespaced'
    targets_app: bool = True

    def env(self, details: ExperimentDetails) -> Dict[str, str]:
        """Experiment env for ``details``, without empty values"""
        env = {}
        for key, value in self.env_builder(details).items():
            if value is None or str(value) == '':
                continue
            env[key] = str(value)
        return env


def _network_env(details: ExperimentDetails) -> Dict[str, Any]:
    return {
        'CONTAINER_RUNTIME': details.container_runtime,
        'SOCKET_PATH': details.socket_path,
        'TARGET_PODS': details.target_pods,
        'PODS_AFFECTED_PERC': details.pods_affected_perc,
        'NETWORK_INTERFACE': details.network_interface,
    }


FAULTS: Dict[str, FaultSpec] = {fault.name: fault for fault in [
    FaultSpec('pod-delete', 'Deletes a pod belonging to a deployment/statefulset/daemonset', lambda d: {
        'FORCE': d.force,
        'TARGET_PODS': d.target_pods,
        'PODS_AFFECTED_PERC': d.pods_affected_perc,
    }),
    FaultSpec('container-kill', 'Kills a container belonging to an application pod', lambda d: {
        'TOTAL_CHAOS_DURATION': d.chaos_duration,
        'CHAOS_INTERVAL': d.chaos_interval,
        'CONTAINER_RUNTIME': d.container_runtime,
        'SOCKET_PATH': d.socket_path,
    }),
    FaultSpec('disk-fill', 'Fills up the ephemeral storage of an application pod', lambda d: {
        'FILL_PERCENTAGE': d.fill_percentage,
        'TARGET_CONTAINER': d.target_container,
    }),
    FaultSpec('node-cpu-hog', 'Exhausts CPU resources on a Kubernetes node', lambda d: {
        'NODE_CPU_CORE': d.node_cpu_core,
        'NODES_AFFECTED_PERC': d.nodes_affected_perc,
    }, scope='Cluster', targets_app=False),
    FaultSpec('node-memory-hog', 'Exhausts memory resources on a Kubernetes node', lambda d: {
        'MEMORY_CONSUMPTION_PERCENTAGE': d.memory_consumption_percentage,
        'NODES_AFFECTED_PERC': d.nodes_affected_perc,
    }, scope='Cluster', targets_app=False),
    FaultSpec('node-io-stress', 'Injects IO stress on a Kubernetes node', lambda d: {
        'TOTAL_CHAOS_DURATION': d.chaos_duration,
        'FILESYSTEM_UTILIZATION_PERCENTAGE': d.filesystem_utilization_percentage,
    }, scope='Cluster', targets_app=False),
    FaultSpec('pod-autoscaler', 'Scales the application replicas and checks the node autoscaler', lambda d: {
        'TOTAL_CHAOS_DURATION': d.chaos_duration,
    }),
    FaultSpec('pod-cpu-hog', 'Consumes CPU resources of an application container', lambda d: {
        'TOTAL_CHAOS_DURATION': d.chaos_duration,
        'CPU_CORES': d.cpu,
    }),
    FaultSpec('pod-memory-hog', 'Consumes memory resources of an application container', lambda d: {
        'TOTAL_CHAOS_DURATION': d.chaos_duration,
        'MEMORY_CONSUMPTION': d.memory_consumption,
    }),
    FaultSpec('pod-network-corruption', 'Injects network packet corruption on pods', lambda d: dict(
        _network_env(d), NETWORK_PACKET_CORRUPTION_PERCENTAGE=d.network_packet_corruption_percentage,
    )),
    FaultSpec('pod-network-duplication', 'Injects network packet duplication on pods', lambda d: dict(
        _network_env(d), NETWORK_PACKET_DUPLICATION_PERCENTAGE=d.network_packet_duplication_percentage,
    )),
    FaultSpec('pod-network-latency', 'Injects network latency on pods', lambda d: dict(
        _network_env(d), NETWORK_LATENCY=d.network_latency,
    )),
    FaultSpec('pod-network-loss', 'Injects network packet loss on pods', lambda d: dict(
        _network_env(d), NETWORK_PACKET_LOSS_PERCENTAGE=d.network_packet_loss_percentage,
    )),
]}


def get_fault(name: str) -> FaultSpec:
    try:
        return FAULTS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown fault {name!r}; known faults: {', '.join(sorted(FAULTS))}") from None


def _env_list(env: Dict[str, str]) -> List[Dict[str, str]]:
    return [{'name': name, 'value': value} for name, value in env.items()]


def probe_annotation(probe_name: str, probe_mode: str = 'SOT') -> Dict[str, str]:
    return {'probeRef': json.dumps([{'name': probe_name, 'mode': probe_mode}], separators=(',', ':'))}


def build_chaos_engine(details: ExperimentDetails, fault: FaultSpec, probe_name: Optional[str] = None) -> dict:
    """Native ChaosEngine for ``fault``, applied straight to the cluster"""
    metadata = {'name': details.engine_name, 'namespace': details.chaos_namespace}
    if probe_name:
        metadata['annotations'] = probe_annotation(probe_name, details.probe_mode)

    spec = {
        'engineState': 'active',
        'annotationCheck': details.annotation_check,
        'chaosServiceAccount': details.chaos_service_account,
        'jobCleanUpPolicy': details.job_cleanup_policy,
        'components': {
            'runner': {'image': details.runner_image, 'imagePullPolicy': details.image_pull_policy},
        },
        'experiments': [{
            'name': fault.name,
            'spec': {'components': {'env': _env_list(fault.env(details))}},
        }],
    }
    if fault.targets_app:
        spec['appinfo'] = {'appns': details.app_ns, 'applabel': details.app_label, 'appkind': details.app_kind}
    if details.node_selector_name:
        spec['experiments'][0]['spec']['components']['nodeSelector'] = {
            'kubernetes.io/hostname': details.node_selector_name,
        }

    return {'apiVersion': LITMUS_API_VERSION, 'kind': 'ChaosEngine', 'metadata': metadata, 'spec': spec}


def build_chaos_experiment(fault: FaultSpec, details: ExperimentDetails, image: Optional[str] = None) -> dict:
    """ChaosExperiment definition for ``fault`` (what the experiment pod runs)"""
    permissions = list(EXPERIMENT_PERMISSIONS)
    if fault.scope == 'Cluster':
        permissions.extend(NODE_PERMISSIONS)
    env = {'TOTAL_CHAOS_DURATION': str(details.chaos_duration), 'CHAOS_INTERVAL': str(details.chaos_interval)}
    env.update(fault.env(details))

    return {
        'apiVersion': LITMUS_API_VERSION,
        'kind': 'ChaosExperiment',
        'description': {'message': fault.description},
        'metadata': {'name': fault.name, 'labels': {'name': fault.name}},
        'spec': {
            'definition': {
                'scope': fault.scope,
                'permissions': permissions,
                'image': image or details.go_experiment_image,
                'imagePullPolicy': details.image_pull_policy,
                'args': ['-c', f"./experiments -name {fault.name}"],
                'command': ['/bin/bash'],
                'env': _env_list(env),
                'labels': {'name': fault.name},
            },
        },
    }


@dataclass
class ExperimentConfig:
    """Target and timing of a control-plane experiment"""
    app_namespace: str = WORKFLOW_NAMESPACE
    app_label: str = 'app=nginx'
    app_kind: str = 'deployment'
    chaos_duration: str = '15'
    chaos_interval: str = '5'
    description: str = ''
    tags: List[str] = field(default_factory=list)

    @classmethod
    def for_fault(cls, fault_name: str) -> 'ExperimentConfig':
        return cls(
            description=f"{fault_name} chaos experiment execution",
            tags=[fault_name, 'chaos', 'litmus'],
        )


def _workflow_engine(details: ExperimentDetails, fault: FaultSpec, experiment_name: str,
                     config: ExperimentConfig, probe_name: Optional[str]) -> dict:
    env = fault.env(details)
    env.update({
        'TOTAL_CHAOS_DURATION': config.chaos_duration,
        'CHAOS_INTERVAL': config.chaos_interval,
        'DEFAULT_HEALTH_CHECK': 'false',
        'SEQUENCE': 'parallel',
    })
    metadata = {
        'namespace': ADMIN_NAMESPACE,
        'labels': {'workflow_run_id': WORKFLOW_UID, 'workflow_name': experiment_name},
        'generateName': f"{fault.name}-ce5",
    }
    if probe_name:
        metadata['annotations'] = probe_annotation(probe_name, details.probe_mode)

    spec = {
        'engineState': 'active',
        'chaosServiceAccount': WORKFLOW_CHAOS_SERVICE_ACCOUNT,
        'experiments': [{'name': fault.name, 'spec': {'components': {'env': _env_list(env)}}}],
    }
    if fault.targets_app:
        spec['appinfo'] = {'appns': config.app_namespace, 'applabel': config.app_label, 'appkind': config.app_kind}
    return {'apiVersion': LITMUS_API_VERSION, 'kind': 'ChaosEngine', 'metadata': metadata, 'spec': spec}


def _raw_artifact(name: str, document: dict) -> dict:
    return {
        'name': name,
        'path': f"/tmp/{name}.yaml",
        'raw': {'data': yaml.safe_dump(document, sort_keys=False)},
    }


def build_workflow(details: ExperimentDetails, fault: FaultSpec, experiment_name: str,
                   config: Optional[ExperimentConfig] = None, probe_name: Optional[str] = None) -> dict:
    """
    Argo Workflow that installs the fault, runs one ChaosEngine and cleans up.

    The ChaosExperiment and ChaosEngine travel as YAML strings inside raw
    artifacts; Argo placeholders are left for the workflow controller.
    """
    config = config or ExperimentConfig.for_fault(fault.name)
    step = f"{fault.name}-ce5"
    experiment = build_chaos_experiment(fault, details, image=GO_RUNNER_IMAGE)
    engine = _workflow_engine(details, fault, experiment_name, config, probe_name)

    return {
        'apiVersion': 'argoproj.io/v1alpha1',
        'kind': 'Workflow',
        'metadata': {'name': experiment_name, 'namespace': WORKFLOW_NAMESPACE},
        'spec': {
            'entrypoint': f"{fault.name}-engine",
            'serviceAccountName': WORKFLOW_SERVICE_ACCOUNT,
            'podGC': {'strategy': 'OnWorkflowCompletion'},
            'securityContext': {'runAsUser': 1000, 'runAsNonRoot': True},
            'arguments': {'parameters': [{'name': 'adminModeNamespace', 'value': WORKFLOW_NAMESPACE}]},
            'templates': [
                {
                    'name': f"{fault.name}-engine",
                    'steps': [
                        [{'name': 'install-chaos-faults', 'template': 'install-chaos-faults'}],
                        [{'name': step, 'template': step}],
                        [{'name': 'cleanup-chaos-resources', 'template': 'cleanup-chaos-resources'}],
                    ],
                },
                {
                    'name': 'install-chaos-faults',
                    'inputs': {'artifacts': [_raw_artifact(step, experiment)]},
                    'container': {
                        'name': '',
                        'image': K8S_IMAGE,
                        'command': ['sh', '-c'],
                        'args': [f"kubectl apply -f /tmp/ -n {ADMIN_NAMESPACE} && sleep 30"],
                        'resources': {},
                    },
                },
                {
                    'name': step,
                    'inputs': {'artifacts': [_raw_artifact(step, engine)]},
                    'outputs': {},
                    'metadata': {'labels': {'weight': '10'}},
                    'container': {
                        'name': '',
                        'image': CHECKER_IMAGE,
                        'args': [f"-file=/tmp/{step}.yaml", '-saveName=/tmp/engine-name'],
                        'resources': {},
                    },
                },
                {
                    'name': 'cleanup-chaos-resources',
                    'inputs': {},
                    'outputs': {},
                    'metadata': {},
                    'container': {
                        'name': '',
                        'image': K8S_IMAGE,
                        'command': ['sh', '-c'],
                        'args': [f"kubectl delete chaosengine -l workflow_run_id={WORKFLOW_UID} -n {ADMIN_NAMESPACE}"],
                        'resources': {},
                    },
                },
            ],
        },
        'status': {},
    }


def build_experiment_request(details: ExperimentDetails, infra_id: str, experiment_id: str, experiment_name: str,
                             fault: FaultSpec, config: Optional[ExperimentConfig] = None,
                             probe_name: Optional[str] = None) -> dict:
    """SaveChaosExperimentRequest with the workflow serialized as JSON"""
    config = config or ExperimentConfig.for_fault(fault.name)
    workflow = build_workflow(details, fault, experiment_name, config, probe_name)
    return {
        'id': experiment_id,
        'name': experiment_name,
        'infraID': infra_id,
        'description': config.description,
        'tags': list(config.tags),
        'manifest': json.dumps(workflow),
    }


def generate_unique_experiment_name(base_name: str) -> str:
    return f"{base_name}-{generate_experiment_id()}"


def generate_experiment_id() -> str:
    """First 8 characters of a UUID4"""
    return str(uuid.uuid4())[:8]
