"""Default resource formatting, nested-data helpers and table columns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from .api import APIRequest, APISchema, Formatter, GroupVersionResource, RawResource

TABLE_ACCEPT = (
    "application/json;as=Table;v=v1;g=meta.k8s.io,"
    "application/json;as=Table;v=v1beta1;g=meta.k8s.io"
)


def get_value(obj: Any, *args: str) -> Any:
    """Return the value at a nested key path; raise KeyError when absent."""
    if not args:
        raise KeyError(())
    current = obj
    for key in args:
        if not isinstance(current, dict) or key not in current:
            raise KeyError(".".join(args))
        current = current[key]
    return current


def put_value(obj: Optional[dict], value: Any, *args: str) -> None:
    """Set a value at a nested key path, creating missing mappings."""
    if obj is None or not args:
        return
    *parents, last = args
    current = obj
    for key in parents:
        if key not in current:
            current[key] = {}
        nested = current[key]
        if not isinstance(nested, dict):
            return
        current = nested
    current[last] = value


def remove_value(obj: Any, *args: str) -> Any:
    """Delete the value at a nested key path and return it, or None."""
    if not args:
        return None
    *parents, last = args
    current = obj
    for key in parents:
        current = current.get(key) if isinstance(current, dict) else None
    if not isinstance(current, dict):
        return None
    return current.pop(last, None)


def self_link(gvr: GroupVersionResource, name: str, namespace: str) -> str:
    """Path of an object within the cluster API."""
    if gvr.group == "management.cattle.io" and gvr.version == "v3":
        parts = ["/v1/", gvr.group, ".", gvr.resource]
        if namespace:
            parts += ["/", namespace]
    else:
        parts = ["/api/v1/"] if gvr.group == "" else ["/apis/", gvr.group, "/", gvr.version, "/"]
        if namespace:
            parts += ["namespaces/", namespace, "/"]
        parts.append(gvr.resource)
    parts += ["/", name]
    return "".join(parts)


def include_fields(query: Mapping[str, list[str]], obj: dict) -> None:
    """Keep only the dotted field paths named by the include parameter."""
    if "include" not in query:
        return
    selected: dict[str, Any] = {}
    for path in query["include"]:
        parts = path.split(".")
        try:
            value = get_value(obj, *parts)
        except KeyError:
            continue
        put_value(selected, value, *parts)
    obj.clear()
    obj.update(selected)


def exclude_fields(query: Mapping[str, list[str]], obj: dict) -> None:
    """Drop the dotted field paths named by the exclude parameter."""
    for path in query.get("exclude", []):
        remove_value(obj, *path.split("."))


def exclude_values(query: Mapping[str, list[str]], obj: dict) -> None:
    """Blank out the values of mappings named by the excludeValues parameter."""
    for path in query.get("excludeValues", []):
        parts = path.split(".")
        try:
            target = get_value(obj, *parts)
        except KeyError:
            continue
        if isinstance(target, dict):
            for key in list(target):
                put_value(obj, "", *parts, key)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def make_formatter(summarize: Optional[Callable[[dict], tuple[Any, Any]]]) -> Formatter:
    """Build the default formatter.

    ``summarize`` maps an object to ``(summary, relationships)``; the summary
    carries ``state``, ``error``, ``transitioning`` and a ``message`` list.
    """

    def format_resource(request: APIRequest, resource: RawResource) -> None:
        schema = resource.schema
        if schema is None:
            return
        gvr = schema.gvr()
        if not gvr.version:
            return
        obj = resource.api_object.object
        if not isinstance(obj, dict):
            return
        metadata = obj.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        link = self_link(gvr, _text(metadata.get("name")), _text(metadata.get("namespace")))
        url = request.url_root.rstrip("/") + link

        links = resource.links
        links["view"] = url
        if "update" not in links and "PUT" in schema.collection_methods:
            links["update"] = url
        if "update" not in links and "blocked-PUT" in schema.resource_methods:
            links["update"] = "blocked"
        if "remove" not in links and "blocked-DELETE" in schema.resource_methods:
            links["remove"] = "blocked"

        if summarize is not None:
            summary, relationships = summarize(obj)
            put_value(
                obj,
                {
                    "name": summary.state,
                    "error": summary.error,
                    "transitioning": summary.transitioning,
                    "message": ":".join(summary.message),
                },
                "metadata",
                "state",
            )
            put_value(obj, relationships, "metadata", "relationships")

        include_fields(request.query, obj)
        exclude_fields(request.query, obj)
        exclude_values(request.query, obj)

    return format_resource


@dataclass
class ColumnDefinition:
    name: str = ""
    type: str = ""
    format: str = ""
    description: str = ""
    priority: int = 0
    field: str = ""


TableFetch = Callable[[str, Mapping[str, str], Mapping[str, str]], Any]


class DynamicColumns:
    """Discovers table columns for a schema from the cluster's table view.

    ``fetch(path, params, headers)`` performs the GET and returns the decoded
    body, raising on failure.
    """

    def __init__(self, fetch: TableFetch) -> None:
        self._fetch = fetch

    def set_columns(self, schema: APISchema) -> None:
        """Record the table columns in the schema attributes if not set yet."""
        if schema.attributes.get("columns") is not None:
            return
        gvr = schema.gvr()
        if not gvr.resource:
            return
        prefix = ["api"] if gvr.group == "" else ["apis", gvr.group]
        path = "/" + "/".join([*prefix, gvr.version, gvr.resource])
        try:
            table = self._fetch(path, {"limit": "1"}, {"Accept": TABLE_ACCEPT})
        except Exception:
            schema.attributes["table"] = False
            return
        if not isinstance(table, dict) or table.get("kind") != "Table":
            return
        definitions = table.get("columnDefinitions") or []
        if definitions:
            schema.attributes["columns"] = [
                ColumnDefinition(
                    name=definition.get("name", ""),
                    type=definition.get("type", ""),
                    format=definition.get("format", ""),
                    description=definition.get("description", ""),
                    priority=definition.get("priority", 0),
                    field=f"$.metadata.fields[{i}]",
                )
                for i, definition in enumerate(definitions)
            ]