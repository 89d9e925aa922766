import json

import pytest

from steve_resources.api import APIObject, APIRequest, APISchema, APISchemas
from steve_resources.userpreferences import (
    LocalPreferenceStore,
    UserPreference,
    config_dir,
    register,
)

SCHEMA = APISchema(id="userpreference")


def test_missing_file_gives_empty_preferences(tmp_path):
    obj = LocalPreferenceStore(tmp_path / "conf").by_id(APIRequest(), SCHEMA, "")
    assert obj.type == "userpreference"
    assert obj.id == "local"
    assert obj.object == UserPreference({})


def test_update_round_trip(tmp_path):
    store = LocalPreferenceStore(tmp_path / "conf")
    result = store.update(APIRequest(user="alice"), SCHEMA, APIObject(object={"data": {"theme": "dark"}}), "")
    assert result.id == "alice"
    assert result.object.data == {"theme": "dark"}
    assert json.loads((tmp_path / "conf" / "prefs.json").read_text()) == {"data": {"theme": "dark"}}
    assert store.list(APIRequest(), SCHEMA).objects[0].object.data == {"theme": "dark"}


def test_delete_clears(tmp_path):
    store = LocalPreferenceStore(tmp_path)
    store.update(APIRequest(), SCHEMA, APIObject(object={"data": {"a": "b"}}), "")
    assert store.delete(APIRequest(), SCHEMA, "").object.data == {}


def test_invalid_file_raises(tmp_path):
    (tmp_path / "prefs.json").write_text("[1, 2]")
    with pytest.raises(ValueError):
        LocalPreferenceStore(tmp_path).by_id(APIRequest(), SCHEMA, "")


def test_non_string_values_raise(tmp_path):
    (tmp_path / "prefs.json").write_text('{"data": {"a": 1}}')
    with pytest.raises(ValueError):
        LocalPreferenceStore(tmp_path).by_id(APIRequest(), SCHEMA, "")


def test_config_dir_follows_xdg(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert config_dir() == tmp_path / "steve"
    assert LocalPreferenceStore().conf_file == tmp_path / "steve" / "prefs.json"


def test_register_adds_schema(tmp_path):
    schemas = APISchemas()
    schema = register(schemas, tmp_path)
    assert schemas.lookup_schema("userpreference") is schema
    assert schema.resource_methods == ["GET", "PUT", "DELETE"]
    assert schema.collection_methods == ["GET"]
    assert schema.store.conf_dir == tmp_path


def test_user_preference_to_dict_copies():
    pref = UserPreference({"k": "v"})
    as_dict = pref.to_dict()
    as_dict["data"]["k"] = "changed"
    assert pref.data == {"k": "v"}