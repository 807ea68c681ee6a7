from __future__ import annotations

import copy
import time
from dataclasses import dataclass
from threading import Event, Thread
from typing import Any

from kubernetes.client import V1Service, V1ServiceSpec

from . import db, history
from .builder import build, build_deployment, build_service
from .errors import AlreadyExists, MalformedSnapshot, NotFound
from .resources import APP, DEPLOYMENT, SERVICE, AppSpec, MyApp, same_spec
from .retry import ConflictRetryer
from .settings import settings

# Holds the canonical encoding of the last spec applied to the children.
SPEC_ANNOTATION = "app.example.com/last-applied-spec"


@dataclass(frozen=True)
class ReconcileResult:
    namespace: str
    name: str
    action: str  # absent|deleting|created|repaired|unchanged|updated
    changed: tuple[str, ...] = ()


def _model_attr(model: type, wire_name: str) -> str:
    # Generated attribute names differ across client releases (cluster_i_ps vs cluster_ips).
    for attr, key in model.attribute_map.items():
        if key == wire_name:
            return attr
    raise AttributeError(f"{model.__name__} has no field for '{wire_name}'")


CLUSTER_IPS = _model_attr(V1ServiceSpec, "clusterIPs")


def preserve_assigned_fields(target: V1ServiceSpec, live: V1ServiceSpec | None) -> V1ServiceSpec:
    """Copy platform-allocated fields from the live service spec onto a target spec."""
    spec = copy.deepcopy(target)
    if live is None:
        return spec
    spec.cluster_ip = live.cluster_ip
    setattr(spec, CLUSTER_IPS, getattr(live, CLUSTER_IPS))
    if spec.type != "ClusterIP" and live.type == spec.type:
        # Ports are named by the builder, so a changed port number keeps its allocation.
        allocated = {p.name: p.node_port for p in live.ports or [] if p.node_port}
        for p in spec.ports or []:
            if p.node_port is None and p.name in allocated:
                p.node_port = allocated[p.name]
    return spec


class Reconciler:
    """Keeps a MyApp's Deployment and Service in line with its spec.

    ``reconcile`` is one self-contained pass; nothing carries over between
    passes except what is stored on the objects themselves. ``start`` runs a
    periodic resync over every MyApp for deployments without an external
    scheduler.
    """

    def __init__(self, store: Any, retryer: ConflictRetryer | None = None, poll_interval_s: int | None = None):
        self.store = store
        self.retryer = retryer or ConflictRetryer()
        self.poll_interval_s = max(1, int(poll_interval_s or settings.poll_interval_s))
        self._stop = Event()
        self._thr: Thread | None = None

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        try:
            app = self.store.get(APP, namespace, name)
        except NotFound:
            return ReconcileResult(namespace, name, "absent")
        if app.deleting:
            # Children go away with their owner.
            return ReconcileResult(namespace, name, "deleting")

        spec = app.desired_spec()
        try:
            self.store.get(DEPLOYMENT, namespace, name)
        except NotFound:
            return self._create(app, spec)
        return self._sync(app, spec)

    def _create(self, app: MyApp, spec: AppSpec) -> ReconcileResult:
        if SPEC_ANNOTATION in app.annotations:
            db.log_event(
                "WARN",
                "Snapshot present but deployment missing; recreating children from current spec",
                namespace=app.namespace,
                name=app.name,
            )
        self._record_snapshot(app, spec)

        deployment, service = build(app, spec)
        self.store.create(deployment)
        db.log_event("INFO", f"Created deployment ({spec.replicas} replicas of {spec.image})", app.namespace, app.name)
        try:
            self.store.create(service)
            db.log_event("INFO", f"Created service on port {spec.port}", app.namespace, app.name)
        except AlreadyExists:
            self._update_service(app, service)
            db.log_event("INFO", "Adopted existing service", app.namespace, app.name)
        return ReconcileResult(app.namespace, app.name, "created", (DEPLOYMENT, SERVICE))

    def _sync(self, app: MyApp, spec: AppSpec) -> ReconcileResult:
        try:
            last = history.decode(app.annotations.get(SPEC_ANNOTATION))
        except MalformedSnapshot as e:
            db.log_event("ERROR", f"Children exist but snapshot is unusable: {e}", app.namespace, app.name)
            raise MalformedSnapshot(str(e), kind=APP, namespace=app.namespace, name=app.name) from e

        repaired = False
        try:
            self.store.get(SERVICE, app.namespace, app.name)
        except NotFound:
            # Earlier pass stopped between the two creates.
            self.store.create(build_service(app, spec))
            db.log_event("WARN", "Service was missing; created it", app.namespace, app.name)
            repaired = True

        if same_spec(last, spec):
            if repaired:
                return ReconcileResult(app.namespace, app.name, "repaired", (SERVICE,))
            return ReconcileResult(app.namespace, app.name, "unchanged")

        changed: list[str] = [SERVICE] if repaired else []
        target_deployment = build_deployment(app, spec)
        if target_deployment != build_deployment(app, last):
            self._update_deployment(app, target_deployment)
            changed.append(DEPLOYMENT)
        target_service = build_service(app, spec)
        if not repaired and target_service != build_service(app, last):
            self._update_service(app, target_service)
            changed.append(SERVICE)

        self._record_snapshot(app, spec)
        db.log_event(
            "INFO",
            f"Applied spec change to {', '.join(changed) or 'no children'}",
            app.namespace,
            app.name,
        )
        return ReconcileResult(app.namespace, app.name, "updated", tuple(changed))

    def _record_snapshot(self, app: MyApp, spec: AppSpec) -> None:
        encoded = history.encode(spec)
        if app.annotations.get(SPEC_ANNOTATION) == encoded:
            return

        def write() -> None:
            current = self.store.get(APP, app.namespace, app.name)
            current.annotations[SPEC_ANNOTATION] = encoded
            self.store.update(current)

        self.retryer.apply(write)

    def _update_deployment(self, app: MyApp, target: Any) -> None:
        def write() -> None:
            current = self.store.get(DEPLOYMENT, app.namespace, app.name)
            current.spec = copy.deepcopy(target.spec)
            self.store.update(current)

        self.retryer.apply(write)

    def _update_service(self, app: MyApp, target: V1Service) -> None:
        def write() -> None:
            current = self.store.get(SERVICE, app.namespace, app.name)
            current.spec = preserve_assigned_fields(target.spec, current.spec)
            self.store.update(current)

        self.retryer.apply(write)

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = Thread(target=self._loop, daemon=True)
        self._thr.start()

    def stop(self) -> None:
        self._stop.set()

    def _loop(self) -> None:
        db.log_event("INFO", "Reconciler started")
        while not self._stop.is_set():
            try:
                self._tick()
            except Exception as e:
                db.log_event("ERROR", f"Resync failed: {type(e).__name__}: {e}")
            self._stop.wait(self.poll_interval_s)
        db.log_event("INFO", "Reconciler stopped")

    def _tick(self) -> None:
        for app in self.store.list_apps():
            started = time.monotonic()
            try:
                result = self.reconcile(app.namespace, app.name)
            except Exception as e:
                db.log_event("ERROR", f"Reconcile failed: {type(e).__name__}: {e}", app.namespace, app.name)
                continue
            if result.action not in {"unchanged", "deleting", "absent"}:
                took_ms = round((time.monotonic() - started) * 1000.0, 2)
                db.log_event("INFO", f"Reconcile {result.action} in {took_ms} ms", app.namespace, app.name)
