"""The ``management.cattle.io.cluster`` schema, presenting the local cluster."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from .api import (
    APIEvent,
    APIObject,
    APIObjectList,
    APIRequest,
    APISchema,
    APISchemas,
    EmptyStore,
)

CLUSTER_SCHEMA_ID = "management.cattle.io.cluster"
CLUSTER_RESOURCE_TYPE = "management.cattle.io.clusters"
LOCAL_CLUSTER_ID = "local"


def _apply_action() -> dict[str, str]:
    return {"input": "applyInput", "output": "applyOutput"}


@dataclass
class Condition:
    type: str
    status: str
    last_update_time: str = ""
    last_transition_time: str = ""
    reason: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type, "status": self.status}
        optional = (
            ("lastUpdateTime", self.last_update_time),
            ("lastTransitionTime", self.last_transition_time),
            ("reason", self.reason),
            ("message", self.message),
        )
        result.update((key, value) for key, value in optional if value)
        return result


@dataclass
class ClusterSpec:
    display_name: str = ""
    internal: bool = False
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"displayName": self.display_name}
        if self.internal:
            result["internal"] = True
        result["description"] = self.description
        return result


@dataclass
class ClusterStatus:
    conditions: list[Condition] = field(default_factory=list)
    driver: str = ""
    provider: str = ""
    version: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.conditions:
            result["conditions"] = [condition.to_dict() for condition in self.conditions]
        if self.driver:
            result["driver"] = self.driver
        result["provider"] = self.provider
        if self.version is not None:
            result["version"] = dict(self.version)
        return result


@dataclass
class Cluster:
    name: str = ""
    spec: ClusterSpec = field(default_factory=ClusterSpec)
    status: ClusterStatus = field(default_factory=ClusterStatus)
    kind: str = "Cluster"
    api_version: str = "management.cattle.io/v3"

    def to_dict(self) -> dict[str, Any]:
        """The cluster in its wire form."""
        return {
            "kind": self.kind,
            "apiVersion": self.api_version,
            "metadata": {"name": self.name},
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }


@dataclass
class ApplyInput:
    default_namespace: str = ""
    yaml: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApplyInput":
        return cls(
            default_namespace=data.get("defaultNamespace") or "",
            yaml=data.get("yaml") or "",
        )


@dataclass
class ApplyOutput:
    resources: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"resources": list(self.resources)} if self.resources else {}


class ClusterStore(EmptyStore):
    """Serves the single ``local`` cluster object."""

    def __init__(self, provider: str = "", discovery: Any = None) -> None:
        self.provider = provider
        self.discovery = discovery

    def _server_version(self) -> Optional[dict[str, Any]]:
        if self.discovery is None:
            return None
        try:
            return self.discovery.server_version()
        except Exception:
            return None

    def _local(self) -> APIObject:
        cluster = Cluster(
            name=LOCAL_CLUSTER_ID,
            spec=ClusterSpec(display_name="Local Cluster", internal=True),
            status=ClusterStatus(
                conditions=[Condition(type="Ready", status="True")],
                driver="local",
                provider=self.provider,
                version=self._server_version(),
            ),
        )
        return APIObject(id=LOCAL_CLUSTER_ID, object=cluster)

    def by_id(self, api_op: APIRequest, schema: APISchema, id: str) -> APIObject:
        if not api_op.namespace and id == LOCAL_CLUSTER_ID:
            return self._local()
        return super().by_id(api_op, schema, id)

    def list(self, api_op: APIRequest, schema: APISchema) -> APIObjectList:
        if api_op.namespace:
            return super().list(api_op, schema)
        return APIObjectList([self._local()])

    async def watch(
        self, api_op: APIRequest, schema: Optional[APISchema], watch_request: Any = None
    ) -> AsyncIterator[APIEvent]:
        """Yield the local cluster once, then stay open until closed."""
        yield APIEvent(
            name=LOCAL_CLUSTER_ID,
            resource_type=CLUSTER_RESOURCE_TYPE,
            id=LOCAL_CLUSTER_ID,
            object=self._local(),
        )
        await asyncio.get_running_loop().create_future()


def register(
    schemas: APISchemas,
    provider: str = "",
    discovery: Any = None,
    apply_handler: Any = None,
) -> APISchema:
    """Add the cluster schema and the schemas of its apply action."""
    schemas.add_schema(
        APISchema(
            id="applyInput",
            resource_fields={
                "defaultNamespace": {"type": "string"},
                "yaml": {"type": "string"},
            },
        )
    )
    schemas.add_schema(
        APISchema(id="applyOutput", resource_fields={"resources": {"type": "array[json]"}})
    )
    schema = APISchema(
        id=CLUSTER_SCHEMA_ID,
        plural_name=CLUSTER_RESOURCE_TYPE,
        collection_methods=["GET"],
        resource_methods=["GET"],
        attributes={
            "group": "management.cattle.io",
            "version": "v3",
            "kind": "Cluster",
            "access": {"watch": [{"namespace": "*", "resourceName": "*"}]},
        },
        store=ClusterStore(provider, discovery),
        resource_actions={"apply": _apply_action()},
    )
    if apply_handler is not None:
        schema.action_handlers["apply"] = apply_handler
    schemas.add_schema(schema)
    return schema


def add_apply(schemas: APISchemas, schema: APISchema) -> None:
    """Give ``schema`` the cluster's apply action, unless it already has one."""
    if "apply" in schema.action_handlers:
        return
    cluster = schemas.lookup_schema(CLUSTER_SCHEMA_ID)
    if cluster is None:
        return
    handler = cluster.action_handlers.get("apply")
    if handler is None:
        return
    schema.action_handlers["apply"] = handler
    schema.resource_actions["apply"] = _apply_action()