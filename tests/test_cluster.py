import asyncio

import pytest

from steve_resources.api import (
    APIRequest,
    APISchema,
    APISchemas,
    GroupVersionKind,
    NotFoundError,
)
from steve_resources.cluster import (
    ApplyInput,
    ApplyOutput,
    Cluster,
    ClusterSpec,
    ClusterStatus,
    ClusterStore,
    Condition,
    add_apply,
    add_apply as _add_apply,
    register,
)


class FakeDiscovery:
    def __init__(self, version=None, error=None):
        self.version = version
        self.error = error

    def server_version(self):
        if self.error is not None:
            raise self.error
        return self.version


def _handler():
    return object()


def test_by_id_local_cluster():
    store = ClusterStore("eks", None)
    obj = store.by_id(APIRequest(), None, "local")
    assert obj.id == "local"
    cluster = obj.object
    assert isinstance(cluster, Cluster)
    assert cluster.name == "local"
    assert cluster.spec.display_name == "Local Cluster"
    assert cluster.spec.internal is True
    assert cluster.status.driver == "local"
    assert cluster.status.provider == "eks"
    assert cluster.status.conditions == [Condition(type="Ready", status="True")]


def test_by_id_other_id_not_found():
    with pytest.raises(NotFoundError):
        ClusterStore().by_id(APIRequest(), APISchema(id="x"), "c-other")


def test_by_id_with_namespace_not_found():
    with pytest.raises(NotFoundError):
        ClusterStore().by_id(APIRequest(namespace="ns"), APISchema(id="x"), "local")


def test_list_returns_local_only():
    result = ClusterStore().list(APIRequest(), APISchema(id="x"))
    assert [item.id for item in result] == ["local"]


def test_list_with_namespace_not_found():
    with pytest.raises(NotFoundError):
        ClusterStore().list(APIRequest(namespace="ns"), APISchema(id="x"))


def test_version_from_discovery():
    version = {"gitVersion": "v1.28.6"}
    store = ClusterStore("", FakeDiscovery(version=version))
    cluster = store.by_id(APIRequest(), None, "local").object
    assert cluster.status.version == version
    assert cluster.to_dict()["status"]["version"] == version


def test_discovery_failure_leaves_version_empty():
    store = ClusterStore("", FakeDiscovery(error=RuntimeError("down")))
    cluster = store.by_id(APIRequest(), None, "local").object
    assert cluster.status.version is None
    assert "version" not in cluster.to_dict()["status"]


def test_to_dict_wire_form():
    data = ClusterStore("gke").by_id(APIRequest(), None, "local").object.to_dict()
    assert data["kind"] == "Cluster"
    assert data["apiVersion"] == "management.cattle.io/v3"
    assert data["metadata"] == {"name": "local"}
    assert data["spec"]["displayName"] == "Local Cluster"
    assert data["spec"]["internal"] is True
    assert data["status"]["conditions"] == [{"type": "Ready", "status": "True"}]
    assert data["status"]["provider"] == "gke"


def test_to_dict_omits_empty_fields():
    data = Cluster(name="c", spec=ClusterSpec(), status=ClusterStatus()).to_dict()
    assert "internal" not in data["spec"]
    assert "conditions" not in data["status"]
    assert "driver" not in data["status"]
    assert data["status"]["provider"] == ""


def test_apply_input_and_output():
    parsed = ApplyInput.from_dict({"defaultNamespace": "ns1", "yaml": "kind: Pod"})
    assert parsed == ApplyInput(default_namespace="ns1", yaml="kind: Pod")
    assert ApplyOutput().to_dict() == {}
    assert ApplyOutput(resources=[{"kind": "Pod"}]).to_dict() == {"resources": [{"kind": "Pod"}]}


def test_register_builds_cluster_schema():
    schemas = APISchemas()
    handler = _handler()
    schema = register(schemas, "k3s", None, handler)
    assert schemas.lookup_schema("management.cattle.io.cluster") is schema
    assert schemas.lookup_schema("applyInput") is not None
    assert schemas.lookup_schema("applyOutput") is not None
    assert schema.collection_methods == ["GET"]
    assert schema.resource_methods == ["GET"]
    assert schema.gvk() == GroupVersionKind("management.cattle.io", "v3", "Cluster")
    assert schema.action_handlers["apply"] is handler
    assert schema.resource_actions["apply"] == {"input": "applyInput", "output": "applyOutput"}
    assert schema.attributes["access"]["watch"] == [{"namespace": "*", "resourceName": "*"}]
    assert schema.store.by_id(APIRequest(), schema, "local").object.status.provider == "k3s"


def test_add_apply_copies_handler():
    schemas = APISchemas()
    handler = _handler()
    register(schemas, "", None, handler)
    target = APISchema(id="other")
    add_apply(schemas, target)
    assert target.action_handlers["apply"] is handler
    assert target.resource_actions["apply"] == {"input": "applyInput", "output": "applyOutput"}


def test_add_apply_keeps_existing_handler():
    schemas = APISchemas()
    register(schemas, "", None, _handler())
    existing = _handler()
    target = APISchema(id="other", action_handlers={"apply": existing})
    _add_apply(schemas, target)
    assert target.action_handlers["apply"] is existing
    assert target.resource_actions == {}


def test_add_apply_without_cluster_schema():
    target = APISchema(id="other")
    add_apply(APISchemas(), target)
    assert target.action_handlers == {}
    assert target.resource_actions == {}


@pytest.mark.asyncio
async def test_watch_yields_local_then_stays_open():
    stream = ClusterStore("k3s").watch(APIRequest(), None, None)
    event = await asyncio.wait_for(anext(stream), 1)
    assert event.name == "local"
    assert event.id == "local"
    assert event.resource_type == "management.cattle.io.clusters"
    assert event.object.object.status.provider == "k3s"
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(anext(stream), 0.05)
    await stream.aclose()