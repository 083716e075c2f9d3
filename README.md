# karlon

`karlon` helps manage Kubernetes workload clusters through Argo CD and
Cluster API. It builds the Argo CD `Application` and `ApplicationSet` objects
that clusters and applications are made of, checks and prepares cluster
template directories, and renders a Cluster API manifest for a hosted control
plane cluster.

The package is a library. Functions that read or change objects on a server
take a client object that you supply (any object with the methods described
below), so they can be wired to a real Kubernetes or Argo CD client, or to an
in-memory fake in tests.

## Installation

```
pip install karlon
```

Python 3.10 or later is required. The only dependency is PyYAML.

## Modules

### `karlon.app`

Applications are `ApplicationSet` objects whose single list generator names
the clusters they are deployed to.

- `create_app(namespace, name, dest_namespace, project, src_path, src_repo_url,
  src_target_revision, auto_sync, auto_prune)` returns a new `ApplicationSet`
  with an empty `ListGenerator`, the labels `kkarlon-type=application` and
  `managed-by=kkarlon`, the template name `{{cluster_name}}-app-<name>` and the
  destination server `{{cluster_server}}`. `automated_prune` is `None` unless
  `auto_sync` is true.
- `list_apps(client, namespace)` calls
  `client.list_application_sets(namespace, {"kkarlon-type": "application"})`
  and returns a list.
- `delete_app(client, namespace, name)` fetches the set with
  `client.get_application_set`, refuses it unless it carries the application
  label, then calls `client.delete_application_set`.
- `PROFILES_ANNOTATION_KEY` is the annotation `kkarlon.io/profiles`.

Failures raise `AppError`.

### `karlon.cluster_apps`

- `Cluster` and `BaseClusterInfo` describe a managed cluster; `str(cluster)`
  gives a one-line summary (external, next-gen or previous gen, with the
  profile if there is one).
- `construct_cluster_app(...)` returns the cluster `Application` as a dict,
  with its labels, base cluster annotations, ignored differences, kustomize
  name prefix and automated sync policy. When `overridden` is true the source
  path is `<repo_path>/<cluster_name>`.
- `create_cluster_app(app_service, ...)` builds it and, if
  `create_in_argocd` is true, passes it to `app_service.create`.
- `set_app_profiles(app_service, name, comma_separated_app_profiles)` sets the
  profiles annotation on a cluster application (`app_service.get` then
  `app_service.update`).
- Path helpers: `cluster_path_from_base_path`, `mgmt_path_from_cluster_path`,
  `workload_path_from_cluster_path`, `mgmt_path_from_base_path` and
  `decompose_path`, which splits `<base>/<cluster>/mgmt` into
  `(base, cluster)`.

Failures raise `ClusterError`.

### `karlon.basecluster`

A cluster template directory holds exactly one manifest, a
`kustomization.yaml` and a `configurations.yaml`, and no subdirectories. The
manifest must hold exactly one `Cluster` and no namespaced resources.

- `validate(file_name)` checks a manifest and returns the cluster name.
- `validate_dir(dir_path)` checks a whole directory.
- `prepare(file_name, validate_only, cas_max, cas_min)` returns a
  `PrepareResult`: the cluster name and, unless `validate_only` or nothing
  needed changing, a corrected YAML text with namespaces removed and cluster
  autoscaler size annotations added to `MachineDeployment` resources.
- `prepare_dir(dir_path, cas_max, cas_min)` rewrites the manifest if needed,
  writes any missing `kustomization.yaml` and `configurations.yaml`, and
  returns `(manifest_file_name, cluster_name)`.
- `add_cluster_autoscaler_annotations(annotations, cas_max, cas_min)` returns
  the annotations with missing size annotations filled in, and whether any
  were added.
- `CONFIGURATIONS_YAML` is the kustomize name-reference configuration written
  by `prepare_dir`.

Errors are subclasses of `BaseClusterError`: `MultipleManifestsError`,
`NoManifestError`, `NoKustomizationYamlError`, `NoConfigurationsYamlError`,
`MultipleClustersError`, `NoClusterResourceError`, `BuilderFailedRunError`
(the manifest could not be read or parsed) and `ResourceHasNamespaceError`.

### `karlon.argocd`

`get_repo_creds_from_argocd(secrets_api, repo_url)` calls
`secrets_api.list("argocd.argoproj.io/secret-type=repository")`, where each
item is the data mapping (bytes values) of one secret, and returns a
`RepoCreds` for the first one whose `url` matches. It raises
`RepoCredsNotFoundError` when none matches.

### `karlon.bundle`

- `is_valid_k8s_name(name)` checks an RFC 1123 name of at most 63 characters.
- `delete_bundle(secrets_api, bundle_name)` calls `secrets_api.delete` and
  raises `BundleError` on failure.

### `karlon.manifest`

`generate_cluster_manifest(cluster_name, namespace, hcp_name, endpoint_host,
oidc_config_map, oidc_config_map_cp, replicas, k8s_version)` returns seven
YAML documents joined by `---`: `Cluster`, `ByoCluster`, `HostedControlPlane`,
`ByoMachineTemplate`, `KubeadmConfigTemplate`, `MachineDeployment` and
`K8sInstallerConfigTemplate`. The control plane name (`<cluster_name>cp`), its
endpoint and the OIDC config map names are derived from `cluster_name`; the
arguments given for them are ignored. The version gets a `v` prefix in the
machine deployment and none in the hosted control plane. `SimpleClusterInput`
is a dataclass holding the same fields.

## Examples

```python
from karlon.app import create_app

appset = create_app(
    namespace="argocd",
    name="wordpress",
    dest_namespace="web",
    project="default",
    src_path="apps/wordpress",
    src_repo_url="https://git.example.com/apps.git",
    src_target_revision="main",
    auto_sync=True,
    auto_prune=False,
)
```

```python
from karlon.basecluster import validate_dir, BaseClusterError

try:
    cluster_name = validate_dir("templates/capi-quickstart")
except BaseClusterError as err:
    print("not a usable cluster template:", err)
```

```python
from karlon.manifest import generate_cluster_manifest

text = generate_cluster_manifest(
    "demo", "default", "", "", "", "", replicas=2, k8s_version="1.29.2"
)
```

## What it does not do

- It has no command-line tool and no controller process; everything is called
  from Python.
- It does not connect to Kubernetes, Argo CD or git by itself; you supply the
  client objects, and cloning, committing and pushing templates is up to you.
- It has no Python types for the custom resources (profiles, app profiles,
  cluster registrations and the like), and it does not reconcile application
  sets with the profiles attached to clusters.