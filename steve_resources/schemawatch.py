"""Streams schema changes to a watching user.

A watch sends events when the schema factory reports a change, or when the
user's access set changes.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, AsyncIterator, Iterator, Optional

from .api import (
    CHANGE_API_EVENT,
    CREATE_API_EVENT,
    REMOVE_API_EVENT,
    APIEvent,
    APIObject,
    APIObjectList,
    APIRequest,
    APISchema,
    APISchemas,
    EmptyStore,
    NotFoundError,
    UnauthorizedError,
)

log = logging.getLogger(__name__)

SCHEMA_ID = "schema"
SCHEMA_PLURAL = "schemas"
ACCESS_POLL_SECONDS = 2.0


class _ChangeNotifier:
    """Fans a single factory change callback out to every active watch."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[tuple[asyncio.AbstractEventLoop, asyncio.Event]] = []

    def subscribe(self, wake: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        with self._lock:
            self._subscribers.append((loop, wake))

    def unsubscribe(self, wake: asyncio.Event) -> None:
        with self._lock:
            self._subscribers = [item for item in self._subscribers if item[1] is not wake]

    def notify(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for loop, wake in subscribers:
            try:
                loop.call_soon_threadsafe(wake.set)
            except RuntimeError:
                # The watching loop has already shut down.
                self.unsubscribe(wake)


def _access_id(access: Any) -> Any:
    if isinstance(access, dict):
        return access.get("id", "")
    return getattr(access, "id", "")


def _permitted(check: Any, api_op: APIRequest, schema: APISchema) -> bool:
    try:
        check(api_op, schema)
    except PermissionError:
        return False
    return True


def _filter_schemas(api_op: APIRequest, schemas: APISchemas) -> Iterator[APIObject]:
    """Schemas the request may see, as objects stripped of access details."""
    control = api_op.access_control
    for schema in schemas.schemas.values():
        if control is not None and not (
            _permitted(control.can_list, api_op, schema)
            or _permitted(control.can_get, api_op, schema)
        ):
            continue
        public = schema.copy()
        public.attributes.pop("access", None)
        yield APIObject(type=SCHEMA_ID, id=schema.id, object=public)


def _comparable(schema: APISchema) -> tuple:
    attributes = {key: value for key, value in schema.attributes.items() if key != "access"}
    return (
        schema.id,
        schema.plural_name,
        schema.collection_methods,
        schema.resource_methods,
        schema.resource_fields,
        attributes,
        schema.resource_actions,
    )


class SchemaWatchStore(EmptyStore):
    """Store for the ``schema`` type whose watch follows schema changes per user.

    ``factory.schemas(user)`` builds a user's schemas and ``access_lookup.access_for(user)``
    returns an access set with an ``id`` that changes whenever the access does.
    """

    def __init__(self, access_lookup: Any, factory: Any, notifier: Optional[_ChangeNotifier] = None) -> None:
        self.access_lookup = access_lookup
        self.factory = factory
        self.poll_interval = ACCESS_POLL_SECONDS
        self._notifier = notifier if notifier is not None else _ChangeNotifier()

    def by_id(self, api_op: APIRequest, schema: APISchema, id: str) -> APIObject:
        for item in _filter_schemas(api_op, api_op.schemas):
            if item.id == id:
                return item
        raise NotFoundError(id)

    def list(self, api_op: APIRequest, schema: APISchema) -> APIObjectList:
        return APIObjectList(list(_filter_schemas(api_op, api_op.schemas)))

    def watch(
        self, api_op: APIRequest, schema: Optional[APISchema] = None, watch_request: Any = None
    ) -> AsyncIterator[APIEvent]:
        """Start watching; must be called with an event loop running."""
        user = api_op.user
        if user is None:
            raise UnauthorizedError("request has no user")
        try:
            current = self.factory.schemas(user)
        except Exception as exc:
            raise RuntimeError(f"failed to generate schemas for user {user!r}: {exc}") from exc

        wake = asyncio.Event()
        self._notifier.subscribe(wake)
        access = self.access_lookup.access_for(user)
        return self._events(api_op, user, current, wake, access)

    async def _events(
        self,
        api_op: APIRequest,
        user: Any,
        current: APISchemas,
        wake: asyncio.Event,
        access: Any,
    ) -> AsyncIterator[APIEvent]:
        poller = asyncio.create_task(self._poll_access(user, access, wake))
        try:
            while True:
                await wake.wait()
                wake.clear()
                try:
                    latest = self.factory.schemas(user)
                except Exception as exc:
                    log.error("failed to get schemas for %r: %s", user, exc)
                    continue
                for event in self._changes(api_op, current, latest):
                    yield event
                current = latest
        finally:
            poller.cancel()
            self._notifier.unsubscribe(wake)

    async def _poll_access(self, user: Any, access: Any, wake: asyncio.Event) -> None:
        known = _access_id(access)
        while True:
            await asyncio.sleep(self.poll_interval)
            latest = _access_id(self.access_lookup.access_for(user))
            if latest != known:
                known = latest
                wake.set()

    @staticmethod
    def _changes(api_op: APIRequest, old: APISchemas, new: APISchemas) -> Iterator[APIEvent]:
        seen: set[str] = set()
        for item in _filter_schemas(api_op, new):
            seen.add(item.id)
            previous = old.lookup_schema(item.id)
            if previous is None:
                name = CREATE_API_EVENT
            elif _comparable(item.object) == _comparable(previous):
                continue
            else:
                name = CHANGE_API_EVENT
            yield APIEvent(name=name, resource_type=SCHEMA_ID, object=item)

        for item in _filter_schemas(api_op, old):
            if item.id not in seen:
                yield APIEvent(name=REMOVE_API_EVENT, resource_type=SCHEMA_ID, object=item)


def setup_watcher(schemas: APISchemas, access_lookup: Any, factory: Any) -> APISchema:
    """Add the ``schema`` schema whose store streams schema changes."""
    notifier = _ChangeNotifier()
    factory.on_change(notifier.notify)
    schema = APISchema(
        id=SCHEMA_ID,
        plural_name=SCHEMA_PLURAL,
        collection_methods=["GET"],
        resource_methods=["GET"],
        store=SchemaWatchStore(access_lookup, factory, notifier),
    )
    schemas.add_schema(schema)
    return schema