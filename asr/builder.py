"""Maps a desired-state object onto the Deployment and Service that serve it.

Everything here is a pure function of (identity, spec): the reconciler builds
the same objects both to create children and to decide whether an update is
needed, so two calls with equal input must give equal output.
"""
from __future__ import annotations

from kubernetes.client import (
    V1Container,
    V1ContainerPort,
    V1Deployment,
    V1DeploymentSpec,
    V1EnvVar,
    V1LabelSelector,
    V1ObjectMeta,
    V1OwnerReference,
    V1PodSpec,
    V1PodTemplateSpec,
    V1ResourceRequirements,
    V1Service,
    V1ServicePort,
    V1ServiceSpec,
)

from .resources import AppSpec, MyApp
from .settings import settings

PORT_NAME = "http"


def selector_labels(app: MyApp) -> dict[str, str]:
    # Identity only, so pods stay selected across every spec change.
    return {"app": app.name}


def owner_reference(app: MyApp) -> V1OwnerReference:
    return V1OwnerReference(
        api_version=settings.api_version,
        kind=settings.kind,
        name=app.name,
        uid=app.uid,
        controller=True,
        block_owner_deletion=True,
    )


def _metadata(app: MyApp) -> V1ObjectMeta:
    return V1ObjectMeta(
        name=app.name,
        namespace=app.namespace,
        labels=selector_labels(app),
        owner_references=[owner_reference(app)],
    )


def build_deployment(app: MyApp, spec: AppSpec) -> V1Deployment:
    labels = selector_labels(app)
    resources = None
    if spec.resources.limits or spec.resources.requests:
        resources = V1ResourceRequirements(
            limits=dict(spec.resources.limits) or None,
            requests=dict(spec.resources.requests) or None,
        )
    container = V1Container(
        name=app.name,
        image=spec.image,
        ports=[V1ContainerPort(name=PORT_NAME, container_port=spec.container_port, protocol="TCP")],
        env=[V1EnvVar(name=e.name, value=e.value) for e in spec.env] or None,
        resources=resources,
    )
    return V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=_metadata(app),
        spec=V1DeploymentSpec(
            replicas=spec.replicas,
            selector=V1LabelSelector(match_labels=dict(labels)),
            template=V1PodTemplateSpec(
                metadata=V1ObjectMeta(labels=dict(labels)),
                spec=V1PodSpec(containers=[container]),
            ),
        ),
    )


def build_service(app: MyApp, spec: AppSpec) -> V1Service:
    port = V1ServicePort(
        name=PORT_NAME,
        protocol="TCP",
        port=spec.port,
        target_port=spec.container_port,
    )
    if spec.node_port is not None and spec.service_type != "ClusterIP":
        port.node_port = spec.node_port
    return V1Service(
        api_version="v1",
        kind="Service",
        metadata=_metadata(app),
        spec=V1ServiceSpec(
            type=spec.service_type,
            selector=selector_labels(app),
            ports=[port],
        ),
    )


def build(app: MyApp, spec: AppSpec) -> tuple[V1Deployment, V1Service]:
    return build_deployment(app, spec), build_service(app, spec)
