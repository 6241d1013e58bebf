"""
Unit tests for the kubectl / helm wrappers and Litmus install
"""
import subprocess
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests
import yaml
from kubernetes.client.exceptions import ApiException

from litmus_ci.errors import CommandError, PollTimeoutError, StatusReadError
from litmus_ci.kubectl import (
    CHAOS_CRDS_URL, CHAOS_RBAC_URL, HELM_CHART, apply_manifest, download, install_litmus, install_rbac,
    kubectl, kubectl_json, operator_availability, uninstall_litmus
)


def completed(stdout=''):
    return subprocess.CompletedProcess(args=[], returncode=0, stdout=stdout, stderr='')


def deployment(unavailable=None, ready=None):
    return SimpleNamespace(status=SimpleNamespace(unavailable_replicas=unavailable, ready_replicas=ready))


@pytest.fixture
def run():
    with patch('litmus_ci.kubectl.subprocess.run', return_value=completed()) as mock:
        yield mock


@pytest.mark.unit
class TestCommands:

    def test_kubectl_returns_stdout(self, run):
        run.return_value = completed('pod/nginx\n')
        assert kubectl('get', 'pods') == 'pod/nginx\n'
        assert run.call_args.args[0] == ['kubectl', 'get', 'pods']
        assert run.call_args.kwargs['check'] is True

    def test_failure_raises_command_error(self, run):
        run.side_effect = subprocess.CalledProcessError(1, ['kubectl'], stderr='NotFound')
        with pytest.raises(CommandError) as excinfo:
            kubectl('get', 'namespace', 'missing')
        assert excinfo.value.returncode == 1
        assert excinfo.value.stderr == 'NotFound'

    def test_missing_binary(self, run):
        run.side_effect = FileNotFoundError('kubectl')
        with pytest.raises(CommandError) as excinfo:
            kubectl('version')
        assert excinfo.value.returncode == 127

    def test_kubectl_json(self, run):
        run.return_value = completed('{"kind": "PodList", "items": []}')
        assert kubectl_json('get', 'pods')['kind'] == 'PodList'
        assert run.call_args.args[0][-2:] == ['-o', 'json']

    def test_apply_manifest_pipes_yaml(self, run):
        apply_manifest({'kind': 'ChaosExperiment', 'metadata': {'name': 'pod-delete'}}, namespace='litmus')

        assert run.call_args.args[0] == ['kubectl', 'apply', '-f', '-', '-n', 'litmus']
        assert yaml.safe_load(run.call_args.kwargs['input'])['kind'] == 'ChaosExperiment'


@pytest.mark.unit
class TestRbac:

    def test_download_error(self):
        with patch('litmus_ci.kubectl.requests.get', side_effect=requests.ConnectionError('offline')):
            with pytest.raises(CommandError, match='offline'):
                download('https://hub.example/rbac.yaml')

    def test_namespace_is_rewritten(self, run):
        applied = {}

        def capture(cmd, **kwargs):
            with open(cmd[-1]) as f:
                applied['manifest'] = f.read()
            return completed('serviceaccount/pod-delete-sa created')
        run.side_effect = capture

        response = MagicMock(text='kind: ServiceAccount\nmetadata:\n  namespace: default\n')
        with patch('litmus_ci.kubectl.requests.get', return_value=response):
            install_rbac('https://hub.example/rbac.yaml', 'litmus', 'pod-delete')

        assert 'namespace: litmus' in applied['manifest']
        assert 'namespace: default' not in applied['manifest']


@pytest.mark.unit
class TestOperatorAvailability:

    def test_available(self):
        apps_v1 = MagicMock()
        apps_v1.read_namespaced_deployment.return_value = deployment(unavailable=None, ready=1)
        assert operator_availability(apps_v1)() == 'Available'

    def test_not_ready(self):
        apps_v1 = MagicMock()
        apps_v1.read_namespaced_deployment.return_value = deployment(unavailable=1, ready=0)
        assert operator_availability(apps_v1)() is None

    def test_missing_deployment(self):
        apps_v1 = MagicMock()
        apps_v1.read_namespaced_deployment.side_effect = ApiException(status=404, reason='Not Found')
        with pytest.raises(StatusReadError) as excinfo:
            operator_availability(apps_v1)()
        assert excinfo.value.not_found is True


@pytest.mark.unit
class TestInstall:

    def test_install_litmus(self, details, run, poll_kwargs):
        apps_v1 = MagicMock()
        apps_v1.read_namespaced_deployment.side_effect = [deployment(1, 0), deployment(None, 1)]

        result = install_litmus(details, apps_v1, **poll_kwargs)

        assert result.final_state == 'Available'
        commands = [c.args[0] for c in run.call_args_list]
        assert commands[0] == ['kubectl', 'apply', '-f', details.install_litmus]
        assert commands[-1] == ['helm', 'upgrade', '--install', 'k8s', HELM_CHART, '--namespace', 'litmus']

    def test_operator_never_available(self, details, run, poll_kwargs):
        apps_v1 = MagicMock()
        apps_v1.read_namespaced_deployment.return_value = deployment(1, 0)

        with pytest.raises(PollTimeoutError):
            install_litmus(details, apps_v1, **poll_kwargs)
        assert apps_v1.read_namespaced_deployment.call_count == 50
        assert not any(c.args[0][0] == 'helm' for c in run.call_args_list)

    def test_uninstall_litmus(self, details, run):
        uninstall_litmus(details)

        commands = [c.args[0] for c in run.call_args_list]
        assert commands == [
            ['kubectl', 'delete', 'chaosengine', '--all', '-A'],
            ['helm', 'uninstall', 'k8s', '--namespace', 'litmus'],
            ['kubectl', 'delete', 'chaosengine,chaosexperiment,chaosresult', '--all', '--all-namespaces'],
            ['kubectl', 'delete', '-f', CHAOS_CRDS_URL],
            ['kubectl', 'delete', '-f', CHAOS_RBAC_URL],
        ]
