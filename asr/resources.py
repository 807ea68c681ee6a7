from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidSpec
from .settings import settings

# Object kinds understood by the store boundary.
APP = "MyApp"
DEPLOYMENT = "Deployment"
SERVICE = "Service"


class EnvVar(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    value: str = ""


class Resources(BaseModel):
    # Quantities like `cpu: 1` arrive as YAML numbers.
    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

    limits: dict[str, str] = Field(default_factory=dict)
    requests: dict[str, str] = Field(default_factory=dict)


class AppSpec(BaseModel):
    """What the user asked for. Field aliases are the camelCase wire names."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    image: str = Field(..., min_length=1, description="Container image (name:tag)")
    replicas: int = Field(1, ge=0)
    port: int = Field(..., ge=1, le=65535, description="Port exposed by the service")
    target_port: int | None = Field(None, alias="targetPort", ge=1, le=65535, description="Container port, defaults to port")
    service_type: Literal["ClusterIP", "NodePort", "LoadBalancer"] = Field("ClusterIP", alias="serviceType")
    node_port: int | None = Field(None, alias="nodePort", ge=1, le=65535)
    env: list[EnvVar] = Field(default_factory=list)
    resources: Resources = Field(default_factory=Resources)

    @property
    def container_port(self) -> int:
        return self.target_port or self.port

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def same_spec(a: AppSpec, b: AppSpec) -> bool:
    """Structural equality over the wire form, independent of how the models were built."""
    return a.to_wire() == b.to_wire()


@dataclass
class MyApp:
    """The desired-state object as read from the store.

    ``raw`` keeps the full body so an update writes back everything we did
    not touch (status, labels, managed fields...).
    """

    namespace: str
    name: str
    uid: str = ""
    spec: dict[str, Any] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    deletion_timestamp: str | None = None
    resource_version: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    kind = APP

    @property
    def deleting(self) -> bool:
        return bool(self.deletion_timestamp)

    def desired_spec(self) -> AppSpec:
        try:
            return AppSpec.model_validate(self.spec)
        except ValidationError as e:
            raise InvalidSpec(
                f"{self.namespace}/{self.name} has an unusable spec: {e.error_count()} error(s): {e.errors()[0]['msg']}",
                kind=APP,
                namespace=self.namespace,
                name=self.name,
            ) from e

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> MyApp:
        meta = obj.get("metadata") or {}
        return cls(
            namespace=meta.get("namespace", ""),
            name=meta.get("name", ""),
            uid=meta.get("uid", ""),
            spec=dict(obj.get("spec") or {}),
            annotations=dict(meta.get("annotations") or {}),
            deletion_timestamp=meta.get("deletionTimestamp"),
            resource_version=meta.get("resourceVersion"),
            raw=copy.deepcopy(obj),
        )

    def to_dict(self) -> dict[str, Any]:
        body = copy.deepcopy(self.raw)
        body.setdefault("apiVersion", settings.api_version)
        body.setdefault("kind", settings.kind)
        meta = body.setdefault("metadata", {})
        meta["name"] = self.name
        meta["namespace"] = self.namespace
        meta["annotations"] = dict(self.annotations)
        if self.uid:
            meta["uid"] = self.uid
        if self.resource_version is not None:
            meta["resourceVersion"] = self.resource_version
        body["spec"] = copy.deepcopy(self.spec)
        return body
