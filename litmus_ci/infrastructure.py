"""
Chaos infrastructure lifecycle on ChaosCenter: environment, registration,
in-cluster activation and disconnection
"""
import json
import os
import tempfile
import time
from dataclasses import dataclass
from typing import Optional

from rich.console import Console

from litmus_ci.control_plane import ChaosCenterClient
from litmus_ci.environment import ExperimentDetails
from litmus_ci.errors import ChaosCIError, CommandError, ConfigurationError, StatusReadError
from litmus_ci.kubectl import kubectl
from litmus_ci.manifests import generate_experiment_id
from litmus_ci.poller import PollRequest, PollResult, poll_until_terminal

console = Console()

PORTAL_CRDS_URL = 'https://raw.githubusercontent.com/litmuschaos/litmus/master/mkdocs/docs/3.6.1/litmus-portal-crds-3.6.1.yml'
CRD_SETTLE_SECONDS = 5

LOCAL_SERVER_ADDR = 'http://localhost:9091'
IN_CLUSTER_SERVER_ADDR = 'http://chaos-litmus-frontend-service.litmus.svc.cluster.local:9091'

ACTIVATION_POLL_INTERVAL = 10
ENV_TYPES = ('PROD', 'NON_PROD')


@dataclass
class InfraConnection:
    infra_id: str = ''
    manifest: str = ''
    environment_id: str = ''
    existing: bool = False

    @property
    def connected(self) -> bool:
        return bool(self.infra_id)


def setup_infrastructure(details: ExperimentDetails, control_plane: ChaosCenterClient, **poll_kwargs) -> InfraConnection:
    """
    Resolve the chaos infrastructure experiments will run on.

    INSTALL_INFRA=false skips setup (adopting EXISTING_INFRA_ID when
    USE_EXISTING_INFRA is set); USE_EXISTING_INFRA reuses EXISTING_INFRA_ID;
    otherwise a new infrastructure is registered and activated.
    """
    if not details.install_infra:
        console.print("[dim]INSTALL_INFRA is set to false, skipping infrastructure setup[/dim]")
        if details.use_existing_infra and details.existing_infra_id:
            console.print(f"[dim]Using existing infrastructure {details.existing_infra_id}[/dim]")
            return InfraConnection(infra_id=details.existing_infra_id, existing=True)
        return InfraConnection()

    if details.use_existing_infra:
        if not details.existing_infra_id:
            raise ConfigurationError("USE_EXISTING_INFRA is true but EXISTING_INFRA_ID is not provided")
        console.print(f"[cyan]Using existing infrastructure with ID: {details.existing_infra_id}[/cyan]")
        return InfraConnection(infra_id=details.existing_infra_id, existing=True)

    connection = connect_infrastructure(details, control_plane)
    try:
        activate_infrastructure(details, control_plane, connection, **poll_kwargs)
    except Exception:
        # the infrastructure is registered but will never report in
        release_infrastructure(details, control_plane, connection)
        raise
    return connection


def setup_environment(details: ExperimentDetails, control_plane: ChaosCenterClient) -> str:
    """Return the environment ID to register the infrastructure in, creating one if needed"""
    if details.use_existing_env:
        if not details.existing_env_id:
            raise ConfigurationError("USE_EXISTING_ENV is true but EXISTING_ENV_ID is not provided")
        console.print(f"[dim]Using existing environment with ID: {details.existing_env_id}[/dim]")
        return details.existing_env_id

    env_type = details.env_type if details.env_type in ENV_TYPES else 'NON_PROD'
    environment_id = f"{details.env_name}-{generate_experiment_id()}"
    console.print(f"[cyan]Creating new environment: {details.env_name} with type: {env_type}[/cyan]")
    control_plane.create_environment({
        'environmentID': environment_id,
        'name': details.env_name,
        'type': env_type,
        'description': details.env_description,
    })
    console.print(f"[green]✓ Created environment {environment_id}[/green]")
    return environment_id


def register_infra_request(details: ExperimentDetails, environment_id: str) -> dict:
    request = {
        'infraScope': details.infra_scope,
        'name': details.infra_name,
        'environmentID': environment_id,
        'description': details.infra_description,
        'platformName': details.infra_platform_name,
        'infraNamespace': details.infra_namespace,
        'serviceAccount': details.infra_sa,
        'infraNsExists': details.infra_ns_exists,
        'infraSaExists': details.infra_sa_exists,
        'skipSsl': details.infra_skip_ssl,
        'infrastructureType': 'Kubernetes',
    }
    if details.infra_node_selector:
        request['nodeSelector'] = details.infra_node_selector
    if details.infra_tolerations:
        try:
            request['tolerations'] = json.loads(details.infra_tolerations)
        except ValueError as e:
            raise ConfigurationError(f"INFRA_TOLERATIONS is not valid JSON: {e}") from e
    return request


def connect_infrastructure(details: ExperimentDetails, control_plane: ChaosCenterClient) -> InfraConnection:
    """Register a new infrastructure; its manifest is kept for activation"""
    console.print(f"[cyan]Connecting infrastructure: {details.infra_name}[/cyan]")
    environment_id = details.infra_environment_id or setup_environment(details, control_plane)

    registered = control_plane.register_infra(register_infra_request(details, environment_id))
    connection = InfraConnection(
        infra_id=registered['infraID'],
        manifest=registered['manifest'],
        environment_id=environment_id,
    )
    console.print(f"[green]✓ Registered infrastructure {connection.infra_id}[/green]")
    return connection


def ensure_namespace(namespace: str) -> None:
    try:
        kubectl('get', 'namespace', namespace)
        console.print(f"[dim]Namespace '{namespace}' already exists[/dim]")
    except CommandError:
        console.print(f"[cyan]Creating namespace '{namespace}'...[/cyan]")
        kubectl('create', 'namespace', namespace)


def rewrite_server_address(manifest: str) -> str:
    """Point the subscriber at the in-cluster frontend instead of localhost"""
    if LOCAL_SERVER_ADDR not in manifest:
        return manifest
    console.print(f"[yellow]⚠ Manifest contains localhost server address, using {IN_CLUSTER_SERVER_ADDR}[/yellow]")
    return manifest.replace(LOCAL_SERVER_ADDR, IN_CLUSTER_SERVER_ADDR)


def apply_infra_manifest(connection: InfraConnection) -> None:
    if connection.infra_id not in connection.manifest:
        console.print(f"[yellow]⚠ Manifest does not mention infrastructure {connection.infra_id}[/yellow]")
    manifest = rewrite_server_address(connection.manifest)

    path = os.path.join(tempfile.gettempdir(), f"{connection.infra_id}-infra-manifest.yaml")
    with open(path, 'w') as f:
        f.write(manifest)
    try:
        kubectl('apply', '-f', path, '--validate=false')
    finally:
        os.remove(path)


def infra_activity(control_plane: ChaosCenterClient, infra_id: str):
    """Status fetch returning 'Active' once listInfras reports the infrastructure active"""
    def fetch() -> Optional[str]:
        for infra in control_plane.list_infras():
            if infra.get('infraID') == infra_id:
                return 'Active' if infra.get('isActive') else None
        raise StatusReadError(f"Infrastructure {infra_id} not found in list", not_found=True)
    return fetch


def activate_infrastructure(details: ExperimentDetails, control_plane: ChaosCenterClient,
                            connection: InfraConnection, **poll_kwargs) -> Optional[PollResult]:
    """Deploy the infrastructure manifest and wait for the subscriber to report in"""
    if not details.activate_infra:
        console.print("[dim]ACTIVATE_INFRA is set to false, skipping infrastructure activation[/dim]")
        return None
    if not connection.manifest:
        raise ConfigurationError(f"No manifest available for infrastructure {connection.infra_id}")

    console.print(f"[cyan]Activating infrastructure: {connection.infra_id}[/cyan]")
    ensure_namespace(details.infra_namespace)

    kubectl('apply', '-f', PORTAL_CRDS_URL)
    # CRDs need a moment to be registered
    (poll_kwargs.get('sleep') or time.sleep)(CRD_SETTLE_SECONDS)

    apply_infra_manifest(connection)

    request = PollRequest(
        resource_id=f"infra/{connection.infra_id}",
        poll_interval=ACTIVATION_POLL_INTERVAL,
        timeout=details.infra_activation_timeout * 60,
        terminal_states={'Active'},
        success_states={'Active'},
    )
    return poll_until_terminal(request, infra_activity(control_plane, connection.infra_id), **poll_kwargs).raise_for_outcome()


def disconnect_infrastructure(details: ExperimentDetails, control_plane: ChaosCenterClient,
                              connection: InfraConnection) -> bool:
    """Delete an infrastructure registered by this run; returns False when there was nothing to do"""
    if details.use_existing_infra or connection.existing:
        console.print("[dim]Using existing infrastructure, skipping disconnection[/dim]")
        return False
    if not connection.connected:
        console.print("[dim]No connected infrastructure, skipping disconnection[/dim]")
        return False

    console.print(f"[cyan]Disconnecting infrastructure {connection.infra_id}...[/cyan]")
    control_plane.delete_infra(connection.infra_id)
    console.print(f"[green]✓ Disconnected infrastructure {connection.infra_id}[/green]")
    return True


def release_infrastructure(details: ExperimentDetails, control_plane: ChaosCenterClient,
                           connection: InfraConnection) -> bool:
    """Best-effort disconnect; control-plane failures are reported, not raised"""
    try:
        return disconnect_infrastructure(details, control_plane, connection)
    except ChaosCIError as e:
        console.print(f"[yellow]⚠ Could not disconnect infrastructure {connection.infra_id}: {e}[/yellow]")
        return False


def probe_request(details: ExperimentDetails) -> dict:
    if details.probe_type != 'httpProbe':
        raise ConfigurationError(f"Unsupported probe type {details.probe_type!r}; only httpProbe is supported")
    return {
        'name': details.probe_name,
        'description': f"HTTP probe for {details.probe_url}",
        'tags': ['chaos-ci'],
        'type': 'httpProbe',
        'infrastructureType': 'Kubernetes',
        'kubernetesHTTPProperties': {
            'probeTimeout': details.probe_timeout,
            'interval': details.probe_interval,
            'attempt': details.probe_attempts,
            'url': details.probe_url,
            'method': {'get': {'criteria': '==', 'responseCode': details.probe_response_code}},
        },
    }


def create_probe(details: ExperimentDetails, control_plane: ChaosCenterClient) -> Optional[str]:
    """Create the configured resilience probe; returns its name, or None when LITMUS_CREATE_PROBE is off"""
    if not details.create_probe:
        return None
    console.print(f"[cyan]Creating {details.probe_type} {details.probe_name}...[/cyan]")
    name = control_plane.add_probe(probe_request(details)) or details.probe_name
    console.print(f"[green]✓ Created probe {name}[/green]")
    return name
