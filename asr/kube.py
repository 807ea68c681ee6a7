from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from kubernetes import client, config
from kubernetes.client import ApiException, V1Deployment, V1Service
from kubernetes.config import ConfigException

from .errors import AlreadyExists, Conflict, NotFound, StoreError
from .resources import APP, DEPLOYMENT, SERVICE, MyApp
from .settings import settings


def load_api_client() -> client.ApiClient:
    """Explicit kubeconfig if configured, else in-cluster, else the default kubeconfig."""
    if settings.kubeconfig:
        config.load_kube_config(config_file=settings.kubeconfig)
    else:
        try:
            config.load_incluster_config()
        except ConfigException:
            config.load_kube_config()
    return client.ApiClient()


@contextmanager
def _api_errors(op: str, kind: str, namespace: str, name: str) -> Iterator[None]:
    try:
        yield
    except ApiException as e:
        where = f"{kind} {namespace}/{name}"
        if e.status == 404:
            raise NotFound(f"{where} not found", kind=kind, namespace=namespace, name=name) from e
        if e.status == 409:
            if op == "create":
                raise AlreadyExists(f"{where} already exists", kind=kind, namespace=namespace, name=name) from e
            raise Conflict(f"{where} was modified concurrently", kind=kind, namespace=namespace, name=name) from e
        raise StoreError(
            f"{op} {where} failed: HTTP {e.status} {e.reason}", kind=kind, namespace=namespace, name=name
        ) from e


def _kind_of(obj: Any) -> str:
    if isinstance(obj, MyApp):
        return APP
    if isinstance(obj, V1Deployment):
        return DEPLOYMENT
    if isinstance(obj, V1Service):
        return SERVICE
    raise TypeError(f"Unsupported object type: {type(obj).__name__}")


class KubeStore:
    """Get/Create/Update over the Kubernetes API, keyed by (kind, namespace, name).

    Updates are full replaces carrying the resourceVersion that was read, so
    the API server rejects stale writes with 409 (raised as ``Conflict``).
    """

    def __init__(self, api_client: client.ApiClient | None = None):
        api_client = api_client or load_api_client()
        self.apps = client.AppsV1Api(api_client)
        self.core = client.CoreV1Api(api_client)
        self.custom = client.CustomObjectsApi(api_client)

    def get(self, kind: str, namespace: str, name: str) -> Any:
        with _api_errors("get", kind, namespace, name):
            if kind == APP:
                obj = self.custom.get_namespaced_custom_object(
                    settings.group, settings.version, namespace, settings.plural, name
                )
                return MyApp.from_dict(obj)
            if kind == DEPLOYMENT:
                return self.apps.read_namespaced_deployment(name, namespace)
            if kind == SERVICE:
                return self.core.read_namespaced_service(name, namespace)
        raise TypeError(f"Unsupported kind: {kind}")

    def create(self, obj: Any) -> Any:
        kind = _kind_of(obj)
        namespace, name = _identity(obj)
        with _api_errors("create", kind, namespace, name):
            if kind == DEPLOYMENT:
                return self.apps.create_namespaced_deployment(namespace, obj)
            if kind == SERVICE:
                return self.core.create_namespaced_service(namespace, obj)
        raise TypeError(f"{kind} objects are not created by the reconciler")

    def update(self, obj: Any) -> Any:
        kind = _kind_of(obj)
        namespace, name = _identity(obj)
        with _api_errors("update", kind, namespace, name):
            if kind == APP:
                body = self.custom.replace_namespaced_custom_object(
                    settings.group, settings.version, namespace, settings.plural, name, obj.to_dict()
                )
                return MyApp.from_dict(body)
            if kind == DEPLOYMENT:
                return self.apps.replace_namespaced_deployment(name, namespace, obj)
            return self.core.replace_namespaced_service(name, namespace, obj)

    def list_apps(self) -> list[MyApp]:
        ns = settings.watch_namespace
        with _api_errors("list", APP, ns or "*", "*"):
            if ns:
                resp = self.custom.list_namespaced_custom_object(settings.group, settings.version, ns, settings.plural)
            else:
                resp = self.custom.list_cluster_custom_object(settings.group, settings.version, settings.plural)
        return [MyApp.from_dict(item) for item in resp.get("items", [])]


def _identity(obj: Any) -> tuple[str, str]:
    if isinstance(obj, MyApp):
        return obj.namespace, obj.name
    return obj.metadata.namespace, obj.metadata.name
