"""
Test that the Litmus chaos operator installs and uninstalls cleanly
"""
import pytest
from kubernetes import client
from rich.console import Console

from litmus_ci.environment import ExperimentDetails
from litmus_ci.kubectl import OPERATOR_DEPLOYMENT, install_litmus, uninstall_litmus
from tests.conftest import TEST_FAULTS

console = Console()

LITMUS_CRDS = ('chaosengines.litmuschaos.io', 'chaosexperiments.litmuschaos.io', 'chaosresults.litmuschaos.io')


@pytest.fixture(scope="module")
def litmus_installed(apps_v1):
    details = ExperimentDetails.from_env(TEST_FAULTS[0], f"{TEST_FAULTS[0]}-engine")
    if not details.install_litmus_flag:
        console.print("[dim]INSTALL_CHAOS_CENTER is false, expecting an existing Litmus install[/dim]")
        yield details
        return

    install_litmus(details, apps_v1)
    yield details
    uninstall_litmus(details)


@pytest.mark.integration
def test_chaos_operator_available(litmus_installed, apps_v1):
    """Test that the chaos operator deployment has ready replicas"""
    deployment = apps_v1.read_namespaced_deployment(name=OPERATOR_DEPLOYMENT, namespace='litmus')
    assert (deployment.status.ready_replicas or 0) > 0, \
        f"{OPERATOR_DEPLOYMENT} has no ready replicas"
    console.print(f"[green]✓[/green] {OPERATOR_DEPLOYMENT} ready: {deployment.status.ready_replicas}")


@pytest.mark.integration
@pytest.mark.parametrize('crd', LITMUS_CRDS)
def test_litmus_crd_exists(litmus_installed, kube_clients, crd):
    """Test that the Litmus CRDs are registered"""
    try:
        kube_clients.apiextensions_v1.read_custom_resource_definition(name=crd)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            pytest.fail(f"CRD {crd} not found")
        raise


@pytest.mark.integration
@pytest.mark.parametrize('fault', TEST_FAULTS)
def test_chaos_experiment_installed(litmus_installed, custom_objects_v1, fault):
    """Test that the experiment chart installed a ChaosExperiment for each fault under test"""
    experiments = custom_objects_v1.list_namespaced_custom_object(
        group='litmuschaos.io', version='v1alpha1',
        namespace=litmus_installed.chaos_namespace, plural='chaosexperiments'
    )
    names = [e['metadata']['name'] for e in experiments.get('items', [])]
    console.print(f"[cyan]ChaosExperiments:[/cyan] {', '.join(names) or 'none'}")
    assert fault in names, f"ChaosExperiment {fault} not installed in {litmus_installed.chaos_namespace}"
