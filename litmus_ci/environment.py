"""
Environment-driven configuration for chaos experiments
"""
import os
from dataclasses import dataclass
from typing import Optional

from rich.console import Console

console = Console()

HUB_URL = 'https://hub.litmuschaos.io/api/chaos/master?file=charts/generic'
INSTALL_LITMUS_URL = 'https://litmuschaos.github.io/litmus/litmus-operator-latest.yaml'


def getenv(key: str, default: str = '') -> str:
    """Read an env var, treating an empty value as unset"""
    value = os.getenv(key, '')
    return value if value != '' else default


def getenv_int(key: str, default: int) -> int:
    value = getenv(key, '')
    if value == '':
        return default
    try:
        return int(value)
    except ValueError:
        console.print(f"[yellow]Ignoring non-integer {key}={value!r}, using {default}[/yellow]")
        return default


def getenv_bool(key: str, default: bool) -> bool:
    value = getenv(key, '').strip().lower()
    if value == '':
        return default
    if value in ('1', 't', 'true', 'yes', 'y'):
        return True
    if value in ('0', 'f', 'false', 'no', 'n'):
        return False
    console.print(f"[yellow]Ignoring non-boolean {key}={value!r}, using {default}[/yellow]")
    return default


@dataclass
class ExperimentDetails:
    """All test-related parameters for one experiment, read from the runner's environment"""
    experiment_name: str
    engine_name: str = ''

    # Target application and chaos placement
    operator_name: str = 'chaos-operator-ce'
    chaos_namespace: str = 'default'
    app_ns: str = 'litmus'
    app_label: str = 'app=nginx'
    app_kind: str = 'deployment'
    job_cleanup_policy: str = 'retain'
    annotation_check: str = 'false'
    application_node_name: str = ''
    node_selector_name: str = ''
    image_pull_policy: str = 'Always'
    chaos_service_account: str = ''

    # Generic fault tunables
    chaos_duration: int = 60
    chaos_interval: int = 30
    target_container: str = ''
    cpu: int = 1
    node_cpu_core: int = 2
    force: str = 'false'
    delay: int = 5
    duration: int = 90
    disk_fill_percentage: int = 20
    cpu_inject_command: str = 'md5sum /dev/zero'
    memory_consumption: int = 500
    fill_percentage: int = 80
    container_runtime: str = 'containerd'
    container_path: str = '/var/lib/containerd/io.containerd.grpc.v1.cri/containers/'
    socket_path: str = '/run/containerd/containerd.sock'
    memory_consumption_percentage: int = 30
    network_interface: str = 'eth0'
    network_latency: str = '2000'
    network_packet_duplication_percentage: int = 100
    network_packet_corruption_percentage: int = 100
    network_packet_loss_percentage: int = 100
    filesystem_utilization_percentage: int = 10
    filesystem_utilization_bytes: int = 0
    target_pods: str = ''
    pods_affected_perc: int = 0
    nodes_affected_perc: int = 0
    replicas: int = 0

    # Completion polling (minutes / seconds)
    experiment_timeout: int = 8
    experiment_polling_interval: int = 15

    # Images and manifests
    go_experiment_image: str = 'litmuschaos/go-runner:ci'
    operator_image: str = 'litmuschaos/chaos-operator:ci'
    runner_image: str = 'litmuschaos/chaos-runner:ci'
    rbac_path: str = ''
    engine_path: str = ''
    install_litmus: str = INSTALL_LITMUS_URL

    # ChaosCenter (control plane)
    install_litmus_flag: bool = False
    connect_infra_flag: bool = False
    litmus_endpoint: str = ''
    litmus_username: str = ''
    litmus_password: str = ''
    litmus_project_id: str = ''

    # Chaos infrastructure
    infra_name: str = ''
    infra_namespace: str = 'litmus'
    infra_scope: str = 'namespace'
    infra_sa: str = 'litmus'
    infra_description: str = 'CI Test Infrastructure'
    infra_platform_name: str = 'Kubernetes'
    infra_environment_id: str = ''
    infra_ns_exists: bool = False
    infra_sa_exists: bool = False
    infra_skip_ssl: bool = False
    infra_node_selector: str = ''
    infra_tolerations: str = ''
    install_infra: bool = True
    use_existing_infra: bool = False
    existing_infra_id: str = ''
    activate_infra: bool = True
    infra_activation_timeout: int = 5

    # Environment the infrastructure is registered into
    use_existing_env: bool = False
    existing_env_id: str = ''
    env_name: str = 'chaos-ci-env'
    env_type: str = 'NON_PROD'
    env_description: str = 'CI Test Environment'

    # Probe attached to control-plane experiments
    create_probe: bool = False
    probe_type: str = 'httpProbe'
    probe_name: str = 'http-probe'
    probe_mode: str = 'SOT'
    probe_url: str = 'http://localhost:8080/health'
    probe_timeout: str = '30s'
    probe_interval: str = '10s'
    probe_attempts: int = 1
    probe_response_code: str = '200'

    @classmethod
    def from_env(cls, experiment_name: str, engine_name: str = '') -> 'ExperimentDetails':
        """Build details for ``experiment_name`` from environment variables and defaults"""
        return cls(
            experiment_name=experiment_name,
            engine_name=engine_name,
            operator_name=getenv('OPERATOR_NAME', 'chaos-operator-ce'),
            chaos_namespace=getenv('CHAOS_NAMESPACE', 'default'),
            app_ns=getenv('APP_NS', 'litmus'),
            app_label=getenv('APP_LABEL', 'app=nginx'),
            app_kind=getenv('APP_KIND', 'deployment'),
            job_cleanup_policy=getenv('JOB_CLEANUP_POLICY', 'retain'),
            annotation_check=getenv('ANNOTATION_CHECK', 'false'),
            application_node_name=getenv('APPLICATION_NODE_NAME', ''),
            node_selector_name=getenv('APPLICATION_NODE_NAME', ''),
            image_pull_policy=getenv('IMAGE_PULL_POLICY', 'Always'),
            chaos_service_account=getenv('CHAOS_SERVICE_ACCOUNT', f'{experiment_name}-sa'),
            chaos_duration=getenv_int('TOTAL_CHAOS_DURATION', 60),
            chaos_interval=getenv_int('CHAOS_INTERVAL', 30),
            target_container=getenv('TARGET_CONTAINER', ''),
            cpu=getenv_int('CPU_CORES', 1),
            node_cpu_core=getenv_int('NODE_CPU_CORE', 2),
            force=getenv('FORCE', 'false'),
            delay=getenv_int('DELAY', 5),
            duration=getenv_int('DURATION', 90),
            disk_fill_percentage=getenv_int('FILL_PERCENTAGE', 20),
            cpu_inject_command=getenv('CPU_KILL_COMMAND', 'md5sum /dev/zero'),
            memory_consumption=getenv_int('MEMORY_CONSUMPTION', 500),
            fill_percentage=getenv_int('MEMORY_PERCENTAGE', 80),
            container_runtime=getenv('CONTAINER_RUNTIME', 'containerd'),
            container_path=getenv('CONTAINER_PATH', '/var/lib/containerd/io.containerd.grpc.v1.cri/containers/'),
            socket_path=getenv('SOCKET_PATH', '/run/containerd/containerd.sock'),
            memory_consumption_percentage=getenv_int('MEMORY_CONSUMPTION_PERCENTAGE', 30),
            network_interface=getenv('NETWORK_INTERFACE', 'eth0'),
            network_latency=getenv('NETWORK_LATENCY', '2000'),
            network_packet_duplication_percentage=getenv_int('NETWORK_PACKET_DUPLICATION_PERCENTAGE', 100),
            network_packet_corruption_percentage=getenv_int('NETWORK_PACKET_CORRUPTION_PERCENTAGE', 100),
            network_packet_loss_percentage=getenv_int('NETWORK_PACKET_LOSS_PERCENTAGE', 100),
            filesystem_utilization_percentage=getenv_int('FILESYSTEM_UTILIZATION_PERCENTAGE', 10),
            filesystem_utilization_bytes=getenv_int('FILESYSTEM_UTILIZATION_BYTES', 0),
            target_pods=getenv('TARGET_PODS', ''),
            pods_affected_perc=getenv_int('PODS_AFFECTED_PERC', 0),
            nodes_affected_perc=getenv_int('NODES_AFFECTED_PERC', 0),
            replicas=getenv_int('REPLICA_COUNT', 0),
            experiment_timeout=getenv_int('EXPERIMENT_TIMEOUT', 8),
            experiment_polling_interval=getenv_int('EXPERIMENT_POLLING_INTERVAL', 15),
            go_experiment_image=getenv('EXPERIMENT_IMAGE', 'litmuschaos/go-runner:ci'),
            operator_image=getenv('OPERATOR_IMAGE', 'litmuschaos/chaos-operator:ci'),
            runner_image=getenv('RUNNER_IMAGE', 'litmuschaos/chaos-runner:ci'),
            rbac_path=getenv('RBAC_PATH', f'{HUB_URL}/{experiment_name}/rbac.yaml'),
            engine_path=getenv('ENGINE_PATH', f'{HUB_URL}/{experiment_name}/engine.yaml'),
            install_litmus=getenv('INSTALL_LITMUS_URL', INSTALL_LITMUS_URL),
            install_litmus_flag=getenv_bool('INSTALL_CHAOS_CENTER', False),
            connect_infra_flag=getenv_bool('CONNECT_INFRA', False),
            litmus_endpoint=getenv('LITMUS_ENDPOINT', '').rstrip('/'),
            litmus_username=getenv('LITMUS_USERNAME', ''),
            litmus_password=getenv('LITMUS_PASSWORD', ''),
            litmus_project_id=getenv('LITMUS_PROJECT_ID', ''),
            infra_name=getenv('INFRA_NAME', f'ci-infra-{experiment_name}'),
            infra_namespace=getenv('INFRA_NAMESPACE', 'litmus'),
            infra_scope=getenv('INFRA_SCOPE', 'namespace'),
            infra_sa=getenv('INFRA_SERVICE_ACCOUNT', 'litmus'),
            infra_description=getenv('INFRA_DESCRIPTION', 'CI Test Infrastructure'),
            infra_platform_name=getenv('INFRA_PLATFORM_NAME', 'Kubernetes'),
            infra_environment_id=getenv('INFRA_ENVIRONMENT_ID', ''),
            infra_ns_exists=getenv_bool('INFRA_NS_EXISTS', False),
            infra_sa_exists=getenv_bool('INFRA_SA_EXISTS', False),
            infra_skip_ssl=getenv_bool('INFRA_SKIP_SSL', False),
            infra_node_selector=getenv('INFRA_NODE_SELECTOR', ''),
            infra_tolerations=getenv('INFRA_TOLERATIONS', ''),
            install_infra=getenv_bool('INSTALL_INFRA', True),
            use_existing_infra=getenv_bool('USE_EXISTING_INFRA', False),
            existing_infra_id=getenv('EXISTING_INFRA_ID', ''),
            activate_infra=getenv_bool('ACTIVATE_INFRA', True),
            infra_activation_timeout=getenv_int('INFRA_ACTIVATION_TIMEOUT', 5),
            use_existing_env=getenv_bool('USE_EXISTING_ENV', False),
            existing_env_id=getenv('EXISTING_ENV_ID', ''),
            env_name=getenv('ENV_NAME', 'chaos-ci-env'),
            env_type=getenv('ENV_TYPE', 'NON_PROD'),
            env_description=getenv('ENV_DESCRIPTION', 'CI Test Environment'),
            create_probe=getenv_bool('LITMUS_CREATE_PROBE', False),
            probe_type=getenv('LITMUS_PROBE_TYPE', 'httpProbe'),
            probe_name=getenv('LITMUS_PROBE_NAME', 'http-probe'),
            probe_mode=getenv('LITMUS_PROBE_MODE', 'SOT'),
            probe_url=getenv('LITMUS_PROBE_URL', 'http://localhost:8080/health'),
            probe_timeout=getenv('LITMUS_PROBE_TIMEOUT', '30s'),
            probe_interval=getenv('LITMUS_PROBE_INTERVAL', '10s'),
            probe_attempts=getenv_int('LITMUS_PROBE_ATTEMPTS', 1),
            probe_response_code=getenv('LITMUS_PROBE_RESPONSE_CODE', '200'),
        )

    @property
    def chaos_result_name(self) -> str:
        """ChaosResult naming pattern is {engine_name}-{experiment_name}"""
        return f"{self.engine_name}-{self.experiment_name}"

    @property
    def runner_pod_name(self) -> str:
        return f"{self.engine_name}-runner"

    @property
    def experiment_timeout_seconds(self) -> int:
        return self.experiment_timeout * 60

    def local_poll_settings(self) -> tuple:
        """(interval, timeout) in seconds for in-cluster waits: one fetch every Delay, Duration/Delay fetches"""
        interval = max(self.delay, 1)
        # The timeout fires on the tick after the last fetch
        timeout = max(self.duration, interval) + interval
        return interval, timeout

    def describe(self, fields: Optional[list] = None) -> str:
        names = fields or ['experiment_name', 'engine_name', 'chaos_namespace', 'app_ns', 'app_label', 'app_kind']
        return ', '.join(f"{name}={getattr(self, name)}" for name in names)
