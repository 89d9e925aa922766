"""Read-only schema listing the API groups the server offers."""

from __future__ import annotations

from typing import Any

from .api import (
    APIObject,
    APIObjectList,
    APIRequest,
    APISchema,
    EmptyStore,
    NotFoundError,
    RawResource,
    Template,
)


def _customize(schema: APISchema) -> None:
    schema.collection_methods = ["GET"]
    schema.resource_methods = ["GET"]


def _format(request: APIRequest, resource: RawResource) -> None:
    name = resource.api_object.data().get("name")
    resource.id = "" if name is None else str(name)


def template(discovery: Any) -> Template:
    """Schema template for the ``apigroup`` type."""
    return Template(
        id="apigroup",
        customize=_customize,
        formatter=_format,
        store=APIGroupStore(discovery),
    )


class APIGroupStore(EmptyStore):
    """Lists API groups from a discovery client with ``server_groups()``."""

    def __init__(self, discovery: Any) -> None:
        self.discovery = discovery

    def by_id(self, api_op: APIRequest, schema: APISchema, id: str) -> APIObject:
        for item in self.list(api_op, schema):
            if item.id == id:
                return item
        raise NotFoundError(id)

    def list(self, api_op: APIRequest, schema: APISchema) -> APIObjectList:
        return APIObjectList([_to_api_object(schema, group) for group in self.discovery.server_groups()])


def _to_api_object(schema: APISchema, group: dict) -> APIObject:
    group = dict(group)
    if not group.get("name"):
        group["name"] = "core"
    return APIObject(type=schema.id, id=group["name"], object=group)