"""Core API types shared by the resource stores, schemas and formatters."""

from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Protocol, runtime_checkable

CREATE_API_EVENT = "resource.create"
CHANGE_API_EVENT = "resource.change"
REMOVE_API_EVENT = "resource.remove"


class NotFoundError(LookupError):
    """Raised when a store has no object for the requested identity."""


class UnauthorizedError(PermissionError):
    """Raised when a request carries no usable user identity."""


@dataclass(frozen=True)
class GroupVersionResource:
    group: str = ""
    version: str = ""
    resource: str = ""


@dataclass(frozen=True)
class GroupVersionKind:
    group: str = ""
    version: str = ""
    kind: str = ""


def _attr_str(attributes: dict[str, Any], key: str) -> str:
    value = attributes.get(key)
    return "" if value is None else str(value)


Formatter = Callable[["APIRequest", "RawResource"], None]


@dataclass
class APISchema:
    id: str
    plural_name: str = ""
    collection_methods: list[str] = field(default_factory=list)
    resource_methods: list[str] = field(default_factory=list)
    resource_fields: dict[str, Any] = field(default_factory=dict)
    attributes: dict[str, Any] = field(default_factory=dict)
    store: Optional["Store"] = None
    formatter: Optional[Formatter] = None
    action_handlers: dict[str, Any] = field(default_factory=dict)
    resource_actions: dict[str, Any] = field(default_factory=dict)

    def gvk(self) -> GroupVersionKind:
        """Group, version and kind recorded in the schema attributes."""
        return GroupVersionKind(
            _attr_str(self.attributes, "group"),
            _attr_str(self.attributes, "version"),
            _attr_str(self.attributes, "kind"),
        )

    def gvr(self) -> GroupVersionResource:
        """Group, version and resource recorded in the schema attributes."""
        return GroupVersionResource(
            _attr_str(self.attributes, "group"),
            _attr_str(self.attributes, "version"),
            _attr_str(self.attributes, "resource"),
        )

    def copy(self) -> "APISchema":
        """Return a copy whose containers can be changed independently."""
        return dataclasses.replace(
            self,
            collection_methods=list(self.collection_methods),
            resource_methods=list(self.resource_methods),
            resource_fields=copy.deepcopy(self.resource_fields),
            attributes=copy.deepcopy(self.attributes),
            action_handlers=dict(self.action_handlers),
            resource_actions=copy.deepcopy(self.resource_actions),
        )


@dataclass
class APISchemas:
    schemas: dict[str, APISchema] = field(default_factory=dict)
    _index: dict[str, APISchema] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        for schema in list(self.schemas.values()):
            self._index_schema(schema)

    def _index_schema(self, schema: APISchema) -> None:
        self._index[schema.id.lower()] = schema
        if schema.plural_name:
            self._index[schema.plural_name.lower()] = schema

    def add_schema(self, schema: APISchema) -> None:
        """Register a schema under its id and plural name."""
        if not schema.id:
            raise ValueError("schema id is required")
        self.schemas[schema.id] = schema
        self._index_schema(schema)

    def lookup_schema(self, schema_id: str) -> Optional[APISchema]:
        """Find a schema by exact id, or case-insensitively by id or plural name."""
        found = self.schemas.get(schema_id)
        if found is not None:
            return found
        return self._index.get(schema_id.lower())


@dataclass
class APIObject:
    type: str = ""
    id: str = ""
    object: Any = None

    def data(self) -> dict[str, Any]:
        """The object as a mapping; dict objects are returned themselves."""
        obj = self.object
        if isinstance(obj, dict):
            return obj
        to_dict = getattr(obj, "to_dict", None)
        if callable(to_dict):
            return to_dict()
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        return {}


@dataclass
class APIObjectList:
    objects: list[APIObject] = field(default_factory=list)

    def __iter__(self) -> Iterator[APIObject]:
        return iter(self.objects)

    def __len__(self) -> int:
        return len(self.objects)


@dataclass
class APIEvent:
    name: str
    resource_type: str
    id: str = ""
    object: Optional[APIObject] = None


@dataclass
class APIRequest:
    schemas: APISchemas = field(default_factory=APISchemas)
    namespace: str = ""
    query: dict[str, list[str]] = field(default_factory=dict)
    user: Optional[str] = None
    url_root: str = ""
    access_control: Any = None


@dataclass
class RawResource:
    id: str = ""
    type: str = ""
    schema: Optional[APISchema] = None
    links: dict[str, str] = field(default_factory=dict)
    api_object: APIObject = field(default_factory=APIObject)


@dataclass
class Template:
    id: str = ""
    customize: Optional[Callable[[APISchema], None]] = None
    formatter: Optional[Formatter] = None
    store: Optional["Store"] = None


@runtime_checkable
class Store(Protocol):
    def by_id(self, api_op: APIRequest, schema: APISchema, id: str) -> APIObject: ...

    def list(self, api_op: APIRequest, schema: APISchema) -> APIObjectList: ...

    def update(
        self, api_op: APIRequest, schema: APISchema, data: APIObject, id: str
    ) -> APIObject: ...

    def delete(self, api_op: APIRequest, schema: APISchema, id: str) -> APIObject: ...


class EmptyStore:
    """A store holding nothing: every operation reports not found."""

    def by_id(self, api_op: APIRequest, schema: APISchema, id: str) -> APIObject:
        raise NotFoundError(id)

    def list(self, api_op: APIRequest, schema: APISchema) -> APIObjectList:
        raise NotFoundError(schema.id if schema is not None else "")

    def update(
        self, api_op: APIRequest, schema: APISchema, data: APIObject, id: str
    ) -> APIObject:
        raise NotFoundError(id)

    def delete(self, api_op: APIRequest, schema: APISchema, id: str) -> APIObject:
        raise NotFoundError(id)


def default_schema_templates(discovery: Any) -> list[Template]:
    """Templates customising the built-in resource schemas."""
    from . import apigroups, formatters

    return [
        apigroups.template(discovery),
        Template(id="configmap", formatter=formatters.drop_helm_data),
        Template(id="secret", formatter=formatters.drop_helm_data),
        Template(id="pod", formatter=formatters.pod),
    ]