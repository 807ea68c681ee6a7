import copy
import dataclasses
import sys

import pytest
from kubernetes.client import V1Deployment, V1Service

# Ensure project root is importable (so `import main` / `import cli` work reliably across environments)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from asr import db  # noqa: E402
from asr.errors import AlreadyExists, Conflict, NotFound  # noqa: E402
from asr.reconciler import CLUSTER_IPS, Reconciler  # noqa: E402
from asr.resources import APP, DEPLOYMENT, SERVICE, MyApp  # noqa: E402
from asr.retry import ConflictRetryer  # noqa: E402
from asr.settings import settings  # noqa: E402


def _kind(obj):
    if isinstance(obj, MyApp):
        return APP
    if isinstance(obj, V1Deployment):
        return DEPLOYMENT
    if isinstance(obj, V1Service):
        return SERVICE
    raise TypeError(type(obj).__name__)


def _ident(obj):
    if isinstance(obj, MyApp):
        return obj.namespace, obj.name
    return obj.metadata.namespace, obj.metadata.name


def _rv(obj):
    if isinstance(obj, MyApp):
        return obj.resource_version
    return obj.metadata.resource_version


def _set_rv(obj, rv):
    if isinstance(obj, MyApp):
        obj.resource_version = rv
    else:
        obj.metadata.resource_version = rv


class FakeStore:
    """In-memory object store with optimistic versioning.

    Every call is recorded as (op, kind, namespace, name). ``conflicts`` maps a
    (kind, namespace, name) key to the number of updates that should be
    rejected before one goes through.
    """

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.conflicts = {}
        self._rv = 0
        self._next_ip = 10

    def _bump(self, obj):
        self._rv += 1
        _set_rv(obj, str(self._rv))

    def add_app(self, namespace, name, spec, annotations=None, deletion_timestamp=None, uid="uid-1"):
        app = MyApp(
            namespace=namespace,
            name=name,
            uid=uid,
            spec=copy.deepcopy(spec),
            annotations=dict(annotations or {}),
            deletion_timestamp=deletion_timestamp,
        )
        self.put(app)
        return app

    def put(self, obj):
        """Seed an object without recording a call."""
        obj = copy.deepcopy(obj)
        self._bump(obj)
        self.objects[(_kind(obj), *_ident(obj))] = obj
        return obj

    def stored(self, kind, namespace, name):
        return self.objects[(kind, namespace, name)]

    def get(self, kind, namespace, name):
        self.calls.append(("get", kind, namespace, name))
        try:
            return copy.deepcopy(self.objects[(kind, namespace, name)])
        except KeyError:
            raise NotFound(f"{kind} {namespace}/{name} not found", kind=kind, namespace=namespace, name=name)

    def create(self, obj):
        kind = _kind(obj)
        key = (kind, *_ident(obj))
        self.calls.append(("create", *key))
        if key in self.objects:
            raise AlreadyExists(f"{kind} exists", kind=kind, namespace=key[1], name=key[2])
        obj = copy.deepcopy(obj)
        if kind == SERVICE and obj.spec.cluster_ip is None:
            obj.spec.cluster_ip = f"10.96.0.{self._next_ip}"
            setattr(obj.spec, CLUSTER_IPS, [obj.spec.cluster_ip])
            self._next_ip += 1
        self._bump(obj)
        self.objects[key] = obj
        return copy.deepcopy(obj)

    def update(self, obj):
        kind = _kind(obj)
        key = (kind, *_ident(obj))
        self.calls.append(("update", *key))
        if key not in self.objects:
            raise NotFound(f"{kind} not found", kind=kind, namespace=key[1], name=key[2])
        if self.conflicts.get(key, 0) > 0:
            self.conflicts[key] -= 1
            # Someone else wrote in between.
            self._bump(self.objects[key])
            raise Conflict(f"{kind} modified", kind=kind, namespace=key[1], name=key[2])
        if _rv(obj) != _rv(self.objects[key]):
            raise Conflict(f"{kind} stale write", kind=kind, namespace=key[1], name=key[2])
        obj = copy.deepcopy(obj)
        self._bump(obj)
        self.objects[key] = obj
        return copy.deepcopy(obj)

    def list_apps(self):
        self.calls.append(("list", APP, "*", "*"))
        return [copy.deepcopy(o) for (kind, _, _), o in sorted(self.objects.items()) if kind == APP]

    def writes(self):
        return [(op, kind) for op, kind, _, _ in self.calls if op in {"create", "update"}]

    def reset_calls(self):
        self.calls = []


@pytest.fixture(autouse=True)
def journal(tmp_path, monkeypatch):
    """Isolated sqlite event journal per test."""
    monkeypatch.setattr(db, "settings", dataclasses.replace(settings, db_path=str(tmp_path / "events.db")))
    db.init_db()
    return db


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def reconciler(store, sleeps):
    retryer = ConflictRetryer(max_attempts=3, base_delay_s=0.01, jitter=0, sleep=sleeps.append)
    return Reconciler(store, retryer=retryer, poll_interval_s=1)
