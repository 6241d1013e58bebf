"""
kubectl / helm wrappers and Litmus platform install / uninstall
"""
import json
import os
import subprocess
import tempfile
from typing import Optional

import requests
import yaml
from kubernetes import client
from rich.console import Console

from litmus_ci.environment import ExperimentDetails
from litmus_ci.errors import CommandError, StatusReadError
from litmus_ci.poller import PollRequest, PollResult, poll_until_terminal

console = Console()

LITMUS_NAMESPACE = 'litmus'
OPERATOR_DEPLOYMENT = 'chaos-operator-ce'
OPERATOR_POLL_INTERVAL = 5
OPERATOR_POLL_ATTEMPTS = 50

HELM_REPO_NAME = 'litmuschaos'
HELM_REPO_URL = 'https://litmuschaos.github.io/litmus-helm/'
HELM_RELEASE = 'k8s'
HELM_CHART = 'litmuschaos/kubernetes-chaos'

CHAOS_CRDS_URL = 'https://raw.githubusercontent.com/litmuschaos/chaos-operator/master/deploy/chaos_crds.yaml'
CHAOS_RBAC_URL = 'https://raw.githubusercontent.com/litmuschaos/chaos-operator/master/deploy/rbac.yaml'

DOWNLOAD_TIMEOUT = 30


def _run(cmd, input_text: Optional[str] = None, timeout: Optional[int] = None) -> str:
    try:
        result = subprocess.run(cmd, input=input_text, capture_output=True, text=True, check=True, timeout=timeout)
    except subprocess.CalledProcessError as e:
        console.print(f"[red]✗ Command failed:[/red] {' '.join(cmd)}")
        console.print(f"[red]Error:[/red] {e.stderr}")
        raise CommandError(cmd, e.returncode, e.stderr) from e
    except FileNotFoundError as e:
        raise CommandError(cmd, 127, str(e)) from e
    return result.stdout


def kubectl(*args: str, input_text: Optional[str] = None, timeout: Optional[int] = None) -> str:
    """Run kubectl and return stdout"""
    return _run(['kubectl', *args], input_text=input_text, timeout=timeout)


def kubectl_json(*args: str) -> dict:
    """Run kubectl with JSON output and parse it"""
    output = kubectl(*args, '-o', 'json')
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        console.print(f"[red]✗ Failed to parse JSON:[/red] {e}")
        raise


def helm(*args: str, timeout: Optional[int] = None) -> str:
    return _run(['helm', *args], timeout=timeout)


def apply_manifest(document: dict, namespace: Optional[str] = None) -> str:
    """Apply a manifest dict through ``kubectl apply -f -``"""
    args = ['apply', '-f', '-']
    if namespace:
        args += ['-n', namespace]
    return kubectl(*args, input_text=yaml.safe_dump(document, sort_keys=False))


def download(url: str) -> str:
    try:
        response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise CommandError(['GET', url], 1, str(e)) from e
    return response.text


def install_rbac(rbac_url: str, namespace: str, experiment_name: str) -> str:
    """
    Create the service account and RBAC of one experiment.

    The hub RBAC manifests target the ``default`` namespace; they are rewritten
    to ``namespace`` before being applied.
    """
    console.print(f"[cyan]Installing RBAC for {experiment_name} in {namespace}...[/cyan]")
    manifest = download(rbac_url).replace('namespace: default', f'namespace: {namespace}')

    fd, path = tempfile.mkstemp(prefix=f"{experiment_name}-sa-", suffix='.yaml')
    try:
        with os.fdopen(fd, 'w') as f:
            f.write(manifest)
        output = kubectl('apply', '-f', path)
    finally:
        os.unlink(path)

    console.print(f"[green]✓ RBAC for {experiment_name} created[/green]")
    return output


def operator_availability(apps_v1: client.AppsV1Api, namespace: str = LITMUS_NAMESPACE,
                          name: str = OPERATOR_DEPLOYMENT):
    """Status fetch returning 'Available' once the operator deployment has no unavailable replicas"""
    def fetch():
        try:
            deployment = apps_v1.read_namespaced_deployment(name=name, namespace=namespace)
        except client.exceptions.ApiException as e:
            raise StatusReadError(f"Deployment {name}: {e.status} {e.reason}", not_found=e.status == 404) from e
        unavailable = deployment.status.unavailable_replicas or 0
        ready = deployment.status.ready_replicas or 0
        if unavailable == 0 and ready > 0:
            return 'Available'
        console.print(f"[dim]      Unavailable replicas: {unavailable}[/dim]")
        return None
    return fetch


def install_litmus(details: ExperimentDetails, apps_v1: client.AppsV1Api, **poll_kwargs) -> PollResult:
    """Install the chaos operator, wait until it is available, then install the experiment charts"""
    console.print(f"[cyan]Installing Litmus from {details.install_litmus}...[/cyan]")
    kubectl('apply', '-f', details.install_litmus)

    request = PollRequest(
        resource_id=f"deployment/{OPERATOR_DEPLOYMENT}",
        poll_interval=OPERATOR_POLL_INTERVAL,
        timeout=OPERATOR_POLL_INTERVAL * (OPERATOR_POLL_ATTEMPTS + 1),
        terminal_states={'Available'},
        success_states={'Available'},
    )
    result = poll_until_terminal(request, operator_availability(apps_v1), **poll_kwargs).raise_for_outcome()
    console.print("[green]✓ Chaos Operator created successfully[/green]")

    console.print("[cyan]Installing chaos experiments from the helm chart...[/cyan]")
    helm('repo', 'add', HELM_REPO_NAME, HELM_REPO_URL, '--force-update')
    helm('repo', 'update')
    helm('upgrade', '--install', HELM_RELEASE, HELM_CHART, '--namespace', details.chaos_namespace)
    console.print("[green]✓ Chaos experiments installed[/green]")
    return result


def uninstall_litmus(details: ExperimentDetails) -> None:
    """Remove every Litmus resource created by install_litmus"""
    console.print("[cyan]Deleting all the chaosengines...[/cyan]")
    kubectl('delete', 'chaosengine', '--all', '-A')

    console.print(f"[cyan]Uninstalling helm release {HELM_RELEASE}...[/cyan]")
    helm('uninstall', HELM_RELEASE, '--namespace', details.chaos_namespace)

    console.print("[cyan]Deleting chaos custom resources...[/cyan]")
    kubectl('delete', 'chaosengine,chaosexperiment,chaosresult', '--all', '--all-namespaces')

    console.print("[cyan]Deleting chaos CRDs and RBAC...[/cyan]")
    kubectl('delete', '-f', CHAOS_CRDS_URL)
    kubectl('delete', '-f', CHAOS_RBAC_URL)
    console.print("[green]✓ Litmus uninstalled[/green]")
