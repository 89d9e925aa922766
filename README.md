# steve-resources

Schemas, stores and formatters for the resource types of a Kubernetes-style
API server. Stores take a request (`steve_resources.api.APIRequest`) and a
schema (`APISchema`) and return `APIObject` or `APIObjectList` values; a store
with nothing to offer raises `NotFoundError`.

## Core types

`steve_resources.api` defines `APISchema`, `APISchemas` (lookup by id, or
case-insensitively by id or plural name), `APIObject`, `APIObjectList`,
`APIEvent`, `APIRequest`, `RawResource`, `Template`, the `Store` protocol,
`EmptyStore`, `GroupVersionKind` and `GroupVersionResource`.
`APISchema.gvk()` and `APISchema.gvr()` read the `group`, `version`, `kind` and
`resource` attributes of a schema.

`default_schema_templates(discovery)` returns templates for API groups,
config maps, secrets and pods.

## Resource types

- **API groups** – `apigroups.template(discovery)` builds the `apigroup`
  template with a read-only `APIGroupStore`. The store lists the groups from
  `discovery.server_groups()` and names the unnamed core group `core`.
- **Cluster** – `cluster.register(schemas, provider, discovery, apply_handler)`
  adds the `management.cattle.io.cluster` schema together with the
  `applyInput` and `applyOutput` schemas. Its `ClusterStore` serves a single
  `local` cluster whose status carries the provider, the `local` driver, a
  `Ready` condition and, when `discovery.server_version()` answers, the server
  version. `ClusterStore.watch` is an async generator that yields the local
  cluster once and then stays open. `add_apply(schemas, schema)` copies the
  cluster's `apply` action handler onto another schema that has none.
- **Counts** – `counts.register(schemas, cluster_cache)` adds the `count`
  schema. `CountsStore` counts the cached objects of every schema the request
  may list and watch, per namespace, with error and in-progress tallies.
  `CountsStore.watch` returns an async iterator of only the counts that change
  later. `counts_buffer(source, debounce)` sends the first count at once and
  merges the later ones, sending at most one event per debounce period
  (5 seconds by default).
- **User preferences** – `userpreferences.register(schemas, conf_dir)` adds the
  `userpreference` schema backed by `LocalPreferenceStore`. The store keeps one
  document in `prefs.json` under `conf_dir`, or under `config_dir()`
  (`$XDG_CONFIG_HOME/steve`, falling back to `~/.config/steve`). Deleting
  writes an empty document.
- **Schema watching** – `schemawatch.setup_watcher(schemas, access_lookup,
  factory)` adds the `schema` schema. `SchemaWatchStore.watch` must be called
  with an event loop running. It raises `UnauthorizedError` when the request
  has no user. It yields `resource.create`, `resource.change` and
  `resource.remove` events whenever the factory reports a change, or when the
  user's access set id changes (checked every 2 seconds). Access details are
  left out when schemas are compared.

## Formatters

`formatters.drop_helm_data` removes `data.release` from objects labelled as
owned by Helm or Tiller. `formatters.pod` sets `metadata.state.name` from the
third table field.

`common.make_formatter(summarize)` builds the generic formatter. It adds a
`view` link, and `update` and `remove` links where the schema methods call for
them. When `summarize` is given, it attaches `metadata.state` and
`metadata.relationships`. It then applies the `include`, `exclude` and
`excludeValues` query parameters:

```python
from steve_resources.api import GroupVersionResource
from steve_resources.common import include_fields, self_link

obj = {"kind": "ConfigMap", "metadata": {"name": "cfg", "namespace": "ns"}}
include_fields({"include": ["kind", "metadata.name"]}, obj)
# obj == {"kind": "ConfigMap", "metadata": {"name": "cfg"}}

self_link(GroupVersionResource("", "v1", "pods"), "web", "default")
# "/api/v1/namespaces/default/pods/web"
```

`common.DynamicColumns(fetch).set_columns(schema)` asks the cluster for a
table view of the resource through the `fetch(path, params, headers)` callable
and records its columns in the schema's `columns` attribute. When the fetch
fails, it sets `table` to `False` instead.

## What the package does not do

The package holds no HTTP server and no Kubernetes client. The caller supplies:

- the discovery client (`server_groups()`, `server_version()`);
- the cluster cache (`list(gvk)`, `on_add`, `on_change`, `on_remove`), whose
  objects are mappings with a numeric `metadata.resourceVersion` and an
  optional `summary`;
- the schema factory (`schemas(user)`, `on_change(callback)`);
- the access lookup (`access_for(user)`).

Applying YAML to a cluster is not implemented. The `apply` action only carries
whatever `apply_handler` is passed to `cluster.register`.

## Testing

```
pip install -e ".[test]"
pytest
```