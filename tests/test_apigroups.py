import pytest

from steve_resources.api import APIObject, APIRequest, APISchema, NotFoundError, RawResource
from steve_resources.apigroups import APIGroupStore, template


class _Discovery:
    def __init__(self, groups):
        self.groups = groups

    def server_groups(self):
        return self.groups


def _store():
    return APIGroupStore(_Discovery([{"name": ""}, {"name": "apps", "versions": ["v1"]}]))


def test_list_maps_empty_name_to_core():
    listing = _store().list(APIRequest(), APISchema(id="apigroup"))
    assert [obj.id for obj in listing] == ["core", "apps"]
    assert all(obj.type == "apigroup" for obj in listing)
    assert listing.objects[0].object["name"] == "core"


def test_list_does_not_mutate_discovery_data():
    groups = [{"name": ""}]
    APIGroupStore(_Discovery(groups)).list(APIRequest(), APISchema(id="apigroup"))
    assert groups == [{"name": ""}]


def test_by_id_finds_group():
    obj = _store().by_id(APIRequest(), APISchema(id="apigroup"), "apps")
    assert obj.object == {"name": "apps", "versions": ["v1"]}


def test_by_id_missing_raises():
    with pytest.raises(NotFoundError):
        _store().by_id(APIRequest(), APISchema(id="apigroup"), "nope")


def test_template_customizes_and_formats():
    tmpl = template(_Discovery([]))
    assert tmpl.id == "apigroup"
    schema = APISchema(id="apigroup", collection_methods=["POST"])
    tmpl.customize(schema)
    assert schema.collection_methods == ["GET"]
    assert schema.resource_methods == ["GET"]
    resource = RawResource(api_object=APIObject(object={"name": "batch"}))
    tmpl.formatter(APIRequest(), resource)
    assert resource.id == "batch"