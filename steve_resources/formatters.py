"""Formatters applied to specific built-in resource types."""

from __future__ import annotations

from typing import Any

from .api import APIRequest, RawResource
from .common import put_value


def _nested(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def drop_helm_data(request: APIRequest, resource: RawResource) -> None:
    """Remove the release payload from objects owned by Helm or Tiller."""
    data = resource.api_object.data()
    helm_owned = (
        _string(_nested(data, "metadata", "labels", "owner")) == "helm"
        or _string(_nested(data, "metadata", "labels", "OWNER")) == "TILLER"
    )
    if not helm_owned:
        return
    payload = data.get("data")
    if isinstance(payload, dict) and _string(payload.get("release")) != "":
        del payload["release"]


def pod(request: APIRequest, resource: RawResource) -> None:
    """Use the pod's table status column as its state name."""
    data = resource.api_object.data()
    fields = _nested(data, "metadata", "fields")
    if isinstance(fields, list) and len(fields) > 2:
        put_value(data, lower_title(_string(fields[2])), "metadata", "state", "name")


def lower_title(value: str) -> str:
    """Lower-case the leading run of capitals, keeping the start of the next word."""
    chars = list(value)
    last = len(chars) - 1
    for i, ch in enumerate(chars):
        next_upper = i < last and chars[i + 1].isupper()
        if ch.isupper() and (i == 0 or i == last or next_upper):
            chars[i] = ch.lower()
        else:
            break
    return "".join(chars)