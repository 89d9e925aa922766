"""The ``count`` schema: per-type object counts with a debounced watch."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Optional

from .api import (
    CHANGE_API_EVENT,
    APIEvent,
    APIObject,
    APIObjectList,
    APIRequest,
    APISchema,
    APISchemas,
    EmptyStore,
    GroupVersionKind,
)

DEBOUNCE_SECONDS = 5.0
_IGNORED_SCHEMAS = frozenset({"count", "schema", "apiRoot"})
_END = object()


@dataclass
class ObjectSummary:
    """Summarised state of a single cluster object."""

    state: str = ""
    error: bool = False
    transitioning: bool = False
    message: list[str] = field(default_factory=list)


@dataclass
class Summary:
    count: int = 0
    states: Optional[dict[str, int]] = None
    error: int = 0
    transitioning: int = 0

    def deep_copy(self) -> "Summary":
        return Summary(
            count=self.count,
            states=None if self.states is None else dict(self.states),
            error=self.error,
            transitioning=self.transitioning,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.count:
            result["count"] = self.count
        if self.states:
            result["states"] = dict(self.states)
        if self.error:
            result["errors"] = self.error
        if self.transitioning:
            result["transitioning"] = self.transitioning
        return result


@dataclass
class ItemCount:
    summary: Summary = field(default_factory=Summary)
    namespaces: dict[str, Summary] = field(default_factory=dict)
    revision: int = 0

    def deep_copy(self) -> "ItemCount":
        return ItemCount(
            summary=self.summary.deep_copy(),
            namespaces={ns: s.deep_copy() for ns, s in self.namespaces.items()},
            revision=self.revision,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"summary": self.summary.to_dict()}
        if self.namespaces:
            result["namespaces"] = {ns: s.to_dict() for ns, s in self.namespaces.items()}
        return result


@dataclass
class Count:
    id: str = ""
    counts: dict[str, ItemCount] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.id:
            result["id"] = self.id
        result["counts"] = {key: item.to_dict() for key, item in self.counts.items()}
        return result


def simple_state(summary: ObjectSummary) -> str:
    """Collapse a summary into ``error``, ``in-progress`` or nothing."""
    if summary.error:
        return "error"
    if summary.transitioning:
        return "in-progress"
    return ""


def _adjust_summary(counts: Summary, summary: ObjectSummary, delta: int) -> Summary:
    result = counts.deep_copy()
    result.count += delta
    if summary.transitioning:
        result.transitioning += delta
    if summary.error:
        result.error += delta
    state = simple_state(summary)
    if state:
        if result.states is None:
            result.states = {}
        result.states[state] = result.states.get(state, 0) + delta
    return result


def _adjust_counts(item_count: ItemCount, namespace: str, summary: ObjectSummary, delta: int) -> ItemCount:
    result = item_count.deep_copy()
    result.summary = _adjust_summary(result.summary, summary, delta)
    if namespace:
        current = result.namespaces.get(namespace, Summary())
        result.namespaces[namespace] = _adjust_summary(current, summary, delta)
    return result


def add_counts(item_count: ItemCount, namespace: str, summary: ObjectSummary) -> ItemCount:
    """Return a copy of ``item_count`` with one more object counted."""
    return _adjust_counts(item_count, namespace, summary, 1)


def remove_counts(item_count: ItemCount, namespace: str, summary: ObjectSummary) -> ItemCount:
    """Return a copy of ``item_count`` with one object fewer counted."""
    return _adjust_counts(item_count, namespace, summary, -1)


def _summary_of(obj: dict) -> ObjectSummary:
    value = obj.get("summary")
    if isinstance(value, ObjectSummary):
        return value
    if isinstance(value, dict):
        return ObjectSummary(
            state=value.get("state", ""),
            error=bool(value.get("error")),
            transitioning=bool(value.get("transitioning")),
            message=list(value.get("message") or []),
        )
    return ObjectSummary()


def _get_info(obj: Any) -> Optional[tuple[str, str, int, ObjectSummary]]:
    """Name, namespace, revision and summary of a cached object, if usable."""
    if not isinstance(obj, dict):
        return None
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict):
        return None
    try:
        revision = int(str(metadata.get("resourceVersion", "")))
    except ValueError:
        return None
    return (
        str(metadata.get("name") or ""),
        str(metadata.get("namespace") or ""),
        revision,
        _summary_of(obj),
    )


def _grants(access: Any, verb: str, namespace: str, name: str) -> bool:
    if not isinstance(access, dict):
        return False
    for entry in access.get(verb) or []:
        entry_ns = entry.get("namespace", "")
        entry_name = entry.get("resourceName", "")
        if (entry_ns == "*" or entry_ns == namespace) and (entry_name == "*" or entry_name == name):
            return True
    return False


def _to_api_object(count: Count) -> APIObject:
    return APIObject(type="count", id=count.id, object=count)


def _to_api_event(count: Count) -> APIEvent:
    return APIEvent(name=CHANGE_API_EVENT, resource_type="counts", object=_to_api_object(count))


async def _pump(source: AsyncIterable[Count], queue: asyncio.Queue) -> None:
    try:
        async for count in source:
            queue.put_nowait(count)
    except Exception as exc:
        queue.put_nowait(exc)
        return
    queue.put_nowait(_END)


async def counts_buffer(
    source: AsyncIterable[Count], debounce: float = DEBOUNCE_SECONDS
) -> AsyncIterator[APIEvent]:
    """Turn counts into events: the first at once, later ones merged per debounce period."""
    if debounce <= 0:
        raise ValueError("debounce must be positive")
    queue: asyncio.Queue = asyncio.Queue()
    pump = asyncio.create_task(_pump(source, queue))
    loop = asyncio.get_running_loop()
    deadline = loop.time() + debounce
    pending: Optional[Count] = None
    try:
        first = await queue.get()
        if first is _END:
            return
        if isinstance(first, Exception):
            raise first
        yield _to_api_event(first)
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                now = loop.time()
                if now >= deadline:
                    if pending is not None:
                        yield _to_api_event(pending)
                        pending = None
                    while deadline <= loop.time():
                        deadline += debounce
                    continue
                try:
                    item = await asyncio.wait_for(queue.get(), deadline - now)
                except asyncio.TimeoutError:
                    continue
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            if pending is None:
                pending = Count(item.id, dict(item.counts))
            else:
                pending.counts.update(item.counts)
    finally:
        pump.cancel()


class CountsStore(EmptyStore):
    """Counts the cached objects of every schema the request may list and watch.

    The cluster cache offers ``list(gvk)`` and registers handlers through
    ``on_add``, ``on_change`` and ``on_remove``.
    """

    def __init__(self, cluster_cache: Any, debounce: float = DEBOUNCE_SECONDS) -> None:
        self.cluster_cache = cluster_cache
        self.debounce = debounce

    def by_id(self, api_op: APIRequest, schema: APISchema, id: str) -> APIObject:
        return _to_api_object(self._get_count(api_op))

    def list(self, api_op: APIRequest, schema: APISchema) -> APIObjectList:
        return APIObjectList([_to_api_object(self._get_count(api_op))])

    def watch(
        self, api_op: APIRequest, schema: Optional[APISchema] = None, watch_request: Any = None
    ) -> AsyncIterator[APIEvent]:
        """Stream only the counts that change after the watch starts."""
        queue: asyncio.Queue = asyncio.Queue()
        closed = False
        counts = self._get_count(api_op).counts
        gvk_to_schema: dict[GroupVersionKind, APISchema] = {}
        for schema_id in counts:
            found = api_op.schemas.lookup_schema(schema_id)
            if found is not None:
                gvk_to_schema[found.gvk()] = found

        def on_change(add: bool, gvk: GroupVersionKind, obj: Any, old_obj: Any) -> None:
            if closed:
                return
            target = gvk_to_schema.get(gvk)
            if target is None:
                return
            info = _get_info(obj)
            if info is None:
                return
            _, namespace, revision, summary = info
            item_count = counts.get(target.id, ItemCount())
            if revision <= item_count.revision:
                return
            if old_obj is not None:
                old_info = _get_info(old_obj)
                if old_info is None:
                    return
                old_summary = old_info[3]
                if (
                    old_summary.transitioning == summary.transitioning
                    and old_summary.error == summary.error
                    and simple_state(old_summary) == simple_state(summary)
                ):
                    return
                item_count = remove_counts(item_count, namespace, old_summary)
                item_count = add_counts(item_count, namespace, summary)
            elif add:
                item_count = add_counts(item_count, namespace, summary)
            else:
                item_count = remove_counts(item_count, namespace, summary)
            counts[target.id] = item_count
            queue.put_nowait(Count(id="count", counts={target.id: item_count.deep_copy()}))

        self.cluster_cache.on_add(lambda gvk, key, obj: on_change(True, gvk, obj, None))
        self.cluster_cache.on_change(lambda gvk, key, obj, old: on_change(True, gvk, obj, old))
        self.cluster_cache.on_remove(lambda gvk, key, obj: on_change(False, gvk, obj, None))

        async def changes() -> AsyncIterator[Count]:
            nonlocal closed
            try:
                while True:
                    yield await queue.get()
            finally:
                closed = True

        return counts_buffer(changes(), self.debounce)

    def _schemas_to_watch(self, api_op: APIRequest) -> list[APISchema]:
        result = []
        control = api_op.access_control
        for schema in api_op.schemas.schemas.values():
            if schema.id in _IGNORED_SCHEMAS or schema.store is None:
                continue
            if control is not None:
                try:
                    control.can_list(api_op, schema)
                    control.can_watch(api_op, schema)
                except PermissionError:
                    continue
            result.append(schema)
        return result

    def _get_count(self, api_op: APIRequest) -> Count:
        counts: dict[str, ItemCount] = {}
        for schema in self._schemas_to_watch(api_op):
            access = schema.attributes.get("access")
            allow_all = _grants(access, "list", "*", "*")
            revision = 0
            item_count = ItemCount()
            for obj in self.cluster_cache.list(schema.gvk()):
                info = _get_info(obj)
                if info is None:
                    continue
                name, namespace, obj_revision, summary = info
                if not allow_all and not _grants(access, "list", namespace, name) and not _grants(
                    access, "get", namespace, name
                ):
                    continue
                revision = max(revision, obj_revision)
                item_count = add_counts(item_count, namespace, summary)
            item_count.revision = revision
            counts[schema.id] = item_count
        return Count(id="count", counts=counts)


def register(schemas: APISchemas, cluster_cache: Any) -> APISchema:
    """Add the ``count`` schema, which reports counts of other resources."""
    schema = APISchema(
        id="count",
        collection_methods=["GET"],
        resource_methods=["GET"],
        attributes={"access": {"watch": [{"namespace": "*", "resourceName": "*"}]}},
        store=CountsStore(cluster_cache),
    )
    schemas.add_schema(schema)
    return schema