"""User preferences kept in a local JSON file."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .api import APIObject, APIObjectList, APIRequest, APISchema, APISchemas, EmptyStore

PREFERENCE_SCHEMA = "management.cattle.io.preference"


@dataclass
class UserPreference:
    data: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"data": dict(self.data)}


def config_dir() -> Path:
    """Directory holding the preferences file."""
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return Path(base) / "steve"


class LocalPreferenceStore(EmptyStore):
    """Stores a single preference document for the local user."""

    def __init__(self, conf_dir: Optional[Union[str, Path]] = None) -> None:
        self.conf_dir = Path(conf_dir) if conf_dir is not None else config_dir()

    @property
    def conf_file(self) -> Path:
        return self.conf_dir / "prefs.json"

    def _read(self) -> dict[str, str]:
        try:
            text = self.conf_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        decoded = json.loads(text)
        if not isinstance(decoded, dict):
            raise ValueError("preferences file must hold a JSON object")
        data = decoded.get("data")
        if data is None:
            return {}
        if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
            raise ValueError("preference data must map strings to strings")
        return data

    def _write(self, data: dict) -> None:
        self.conf_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        payload = json.dumps(data, separators=(",", ":")).encode("utf-8")
        fd = os.open(self.conf_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)

    def by_id(self, api_op: APIRequest, schema: APISchema, id: str) -> APIObject:
        return APIObject(
            type="userpreference",
            id=api_op.user if api_op.user is not None else "local",
            object=UserPreference(self._read()),
        )

    def list(self, api_op: APIRequest, schema: APISchema) -> APIObjectList:
        return APIObjectList([self.by_id(api_op, schema, "")])

    def update(self, api_op: APIRequest, schema: APISchema, data: APIObject, id: str) -> APIObject:
        self._write(data.data())
        return self.by_id(api_op, schema, "")

    def delete(self, api_op: APIRequest, schema: APISchema, id: str) -> APIObject:
        return self.update(api_op, schema, APIObject(object={}), "")


def register(schemas: APISchemas, conf_dir: Optional[Union[str, Path]] = None) -> APISchema:
    """Add the ``userpreference`` schema backed by a local file."""
    schema = APISchema(
        id="userpreference",
        collection_methods=["GET"],
        resource_methods=["GET", "PUT", "DELETE"],
        store=LocalPreferenceStore(conf_dir),
    )
    schemas.add_schema(schema)
    return schema