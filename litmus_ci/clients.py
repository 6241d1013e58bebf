"""
Kubernetes API client setup
"""
from dataclasses import dataclass

from kubernetes import client, config
from rich.console import Console

console = Console()

LITMUS_GROUP = 'litmuschaos.io'
LITMUS_VERSION = 'v1alpha1'


def load_k8s_config():
    """Load Kubernetes configuration"""
    try:
        config.load_incluster_config()
        console.print("[dim]Using in-cluster Kubernetes config[/dim]")
    except config.ConfigException:
        try:
            config.load_kube_config()
            console.print("[dim]Using local Kubernetes config[/dim]")
        except Exception as e:
            console.print(f"[red]Failed to load Kubernetes config: {e}[/red]")
            raise


@dataclass
class KubeClients:
    """Typed API clients sharing one ApiClient; safe for concurrent reads"""
    core_v1: client.CoreV1Api
    apps_v1: client.AppsV1Api
    custom_objects_v1: client.CustomObjectsApi
    apiextensions_v1: client.ApiextensionsV1Api

    @classmethod
    def from_api_client(cls, api_client: client.ApiClient) -> 'KubeClients':
        return cls(
            core_v1=client.CoreV1Api(api_client),
            apps_v1=client.AppsV1Api(api_client),
            custom_objects_v1=client.CustomObjectsApi(api_client),
            apiextensions_v1=client.ApiextensionsV1Api(api_client),
        )

    @classmethod
    def from_config(cls) -> 'KubeClients':
        load_k8s_config()
        return cls.from_api_client(client.ApiClient())


def get_litmus_object(custom_objects_v1: client.CustomObjectsApi, plural: str, namespace: str, name: str) -> dict:
    """Read a litmuschaos.io custom resource (chaosengines, chaosresults, chaosexperiments)"""
    return custom_objects_v1.get_namespaced_custom_object(
        group=LITMUS_GROUP,
        version=LITMUS_VERSION,
        namespace=namespace,
        plural=plural,
        name=name
    )


def create_litmus_object(custom_objects_v1: client.CustomObjectsApi, plural: str, namespace: str, body: dict) -> dict:
    return custom_objects_v1.create_namespaced_custom_object(
        group=LITMUS_GROUP,
        version=LITMUS_VERSION,
        namespace=namespace,
        plural=plural,
        body=body
    )


def delete_litmus_object(custom_objects_v1: client.CustomObjectsApi, plural: str, namespace: str, name: str) -> bool:
    """Delete a litmuschaos.io custom resource; returns False if it was already gone"""
    try:
        custom_objects_v1.delete_namespaced_custom_object(
            group=LITMUS_GROUP,
            version=LITMUS_VERSION,
            namespace=namespace,
            plural=plural,
            name=name
        )
        return True
    except client.exceptions.ApiException as e:
        if e.status == 404:
            return False
        raise
