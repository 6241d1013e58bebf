"""
ChaosCenter (Litmus control plane) client.

Authenticates against the auth server and talks GraphQL to ``{endpoint}/api/query``.
Every method is a single request with no retries; polling lives in the poller.
"""
from typing import Any, Dict, List, Optional

import requests
from rich.console import Console

from litmus_ci.environment import ExperimentDetails
from litmus_ci.errors import ConfigurationError, ControlPlaneError

console = Console()

REQUEST_TIMEOUT = 30
USER_AGENT = 'litmus-chaos-ci/1.0'

SAVE_EXPERIMENT = """
mutation saveChaosExperiment($projectID: ID!, $request: SaveChaosExperimentRequest!) {
    saveChaosExperiment(projectID: $projectID, request: $request)
}
"""

RUN_EXPERIMENT = """
mutation runChaosExperiment($projectID: ID!, $experimentID: String!) {
    runChaosExperiment(projectID: $projectID, experimentID: $experimentID) {
        notifyID
    }
}
"""

LIST_EXPERIMENT_RUNS = """
query listExperimentRun($projectID: ID!, $request: ListExperimentRunRequest!) {
    listExperimentRun(projectID: $projectID, request: $request) {
        totalNoOfExperimentRuns
        experimentRuns {
            experimentRunID
            experimentID
            phase
            updatedAt
        }
    }
}
"""

GET_EXPERIMENT_RUN = """
query getExperimentRun($projectID: ID!, $experimentRunID: ID) {
    getExperimentRun(projectID: $projectID, experimentRunID: $experimentRunID) {
        experimentRunID
        phase
        resiliencyScore
    }
}
"""

REGISTER_INFRA = """
mutation registerInfra($projectID: ID!, $request: RegisterInfraRequest!) {
    registerInfra(projectID: $projectID, request: $request) {
        infraID
        manifest
        __typename
    }
}
"""

LIST_INFRAS = """
query listInfras($projectID: ID!) {
    listInfras(projectID: $projectID) {
        infras {
            infraID
            name
            isActive
            isInfraConfirmed
        }
    }
}
"""

DELETE_INFRA = """
mutation deleteInfra($projectID: ID!, $infraID: String!) {
    deleteInfra(projectID: $projectID, infraID: $infraID)
}
"""

CREATE_ENVIRONMENT = """
mutation createEnvironment($projectID: ID!, $request: CreateEnvironmentRequest) {
    createEnvironment(projectID: $projectID, request: $request) {
        environmentID
        name
    }
}
"""

ADD_PROBE = """
mutation addProbe($projectID: ID!, $request: ProbeRequest!) {
    addProbe(projectID: $projectID, request: $request) {
        name
    }
}
"""


class ChaosCenterClient:
    """Authenticated GraphQL client for one ChaosCenter project"""

    def __init__(self, endpoint: str, project_id: str, token: str = '', session: Optional[requests.Session] = None):
        self.endpoint = endpoint.rstrip('/')
        self.project_id = project_id
        self.token = token
        self.session = session or requests.Session()

    @classmethod
    def from_details(cls, details: ExperimentDetails, session: Optional[requests.Session] = None) -> 'ChaosCenterClient':
        """Create a client from LITMUS_* settings and log in"""
        missing = [
            name for name, value in (
                ('LITMUS_ENDPOINT', details.litmus_endpoint),
                ('LITMUS_USERNAME', details.litmus_username),
                ('LITMUS_PASSWORD', details.litmus_password),
                ('LITMUS_PROJECT_ID', details.litmus_project_id),
            ) if not value
        ]
        if missing:
            raise ConfigurationError(f"{', '.join(missing)} must be set to use the ChaosCenter API")

        cc = cls(details.litmus_endpoint, details.litmus_project_id, session=session)
        cc.login(details.litmus_username, details.litmus_password)
        return cc

    @property
    def graphql_url(self) -> str:
        return f"{self.endpoint}/api/query"

    def login(self, username: str, password: str) -> str:
        """Exchange credentials for a bearer token"""
        url = f"{self.endpoint}/auth/login"
        try:
            response = self.session.post(
                url,
                json={'username': username, 'password': password},
                headers={'Content-Type': 'application/json', 'User-Agent': USER_AGENT},
                timeout=REQUEST_TIMEOUT
            )
        except requests.RequestException as e:
            raise ControlPlaneError(f"Login request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise ControlPlaneError(f"Login failed with status: {response.status_code}", status_code=response.status_code)

        body = response.json()
        token = body.get('accessToken') or body.get('access_token') or ''
        if not token:
            raise ControlPlaneError("Login response did not contain an access token")
        self.token = token
        console.print(f"[dim]Authenticated against ChaosCenter at {self.endpoint}[/dim]")
        return token

    def _headers(self) -> Dict[str, str]:
        return {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'Authorization': f"Bearer {self.token}",
            'Referer': self.endpoint,
            'Origin': self.endpoint,
            'User-Agent': USER_AGENT,
        }

    def graphql(self, operation: str, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Execute one GraphQL operation and return its ``data`` object"""
        if not self.token:
            raise ControlPlaneError("Not authenticated: call login() first")

        payload = {'operationName': operation, 'variables': variables, 'query': query}
        try:
            response = self.session.post(self.graphql_url, json=payload, headers=self._headers(), timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise ControlPlaneError(f"{operation} request failed: {e}") from e

        if response.status_code != 200:
            raise ControlPlaneError(f"{operation} failed with status: {response.status_code}", status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise ControlPlaneError(f"{operation} returned invalid JSON: {e}") from e

        errors = body.get('errors') or []
        if errors:
            raise ControlPlaneError(f"GraphQL error in {operation}: {errors[0].get('message', errors[0])}")
        return body.get('data') or {}

    # Experiments

    def save_experiment(self, request: Dict[str, Any]) -> str:
        data = self.graphql('saveChaosExperiment', SAVE_EXPERIMENT, {
            'projectID': self.project_id,
            'request': request,
        })
        return data.get('saveChaosExperiment', '')

    def run_experiment(self, experiment_id: str) -> str:
        """Trigger a saved experiment; returns the notify ID"""
        data = self.graphql('runChaosExperiment', RUN_EXPERIMENT, {
            'projectID': self.project_id,
            'experimentID': experiment_id,
        })
        return (data.get('runChaosExperiment') or {}).get('notifyID', '')

    def list_experiment_runs(self, experiment_id: str, limit: int = 1) -> List[Dict[str, Any]]:
        """Most recent runs of an experiment (newest first)"""
        data = self.graphql('listExperimentRun', LIST_EXPERIMENT_RUNS, {
            'projectID': self.project_id,
            'request': {
                'experimentIDs': [experiment_id],
                'pagination': {'page': 0, 'limit': limit},
            },
        })
        return (data.get('listExperimentRun') or {}).get('experimentRuns') or []

    def get_run_phase(self, experiment_run_id: str) -> str:
        data = self.graphql('getExperimentRun', GET_EXPERIMENT_RUN, {
            'projectID': self.project_id,
            'experimentRunID': experiment_run_id,
        })
        return (data.get('getExperimentRun') or {}).get('phase', '')

    # Infrastructure and environments

    def register_infra(self, request: Dict[str, Any]) -> Dict[str, str]:
        """Register a chaos infrastructure; returns ``{'infraID': ..., 'manifest': ...}``"""
        data = self.graphql('registerInfra', REGISTER_INFRA, {
            'projectID': self.project_id,
            'request': request,
        })
        registered = data.get('registerInfra') or {}
        if not registered.get('infraID'):
            raise ControlPlaneError("Empty infraID received from registerInfra response")
        if not registered.get('manifest'):
            raise ControlPlaneError("Empty manifest received from registerInfra response")
        return registered

    def list_infras(self) -> List[Dict[str, Any]]:
        data = self.graphql('listInfras', LIST_INFRAS, {'projectID': self.project_id})
        return (data.get('listInfras') or {}).get('infras') or []

    def delete_infra(self, infra_id: str) -> str:
        data = self.graphql('deleteInfra', DELETE_INFRA, {
            'projectID': self.project_id,
            'infraID': infra_id,
        })
        return data.get('deleteInfra', '')

    def create_environment(self, request: Dict[str, Any]) -> Dict[str, Any]:
        data = self.graphql('createEnvironment', CREATE_ENVIRONMENT, {
            'projectID': self.project_id,
            'request': request,
        })
        return data.get('createEnvironment') or {}

    def add_probe(self, request: Dict[str, Any]) -> str:
        data = self.graphql('addProbe', ADD_PROBE, {
            'projectID': self.project_id,
            'request': request,
        })
        return (data.get('addProbe') or {}).get('name', '')
