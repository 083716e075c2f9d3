"""Checking and preparing cluster template directories built from cluster API manifests."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

CAS_MIN_ANNOTATION = "cluster.x-k8s.io/cluster-api-autoscaler-node-group-min-size"
CAS_MAX_ANNOTATION = "cluster.x-k8s.io/cluster-api-autoscaler-node-group-max-size"

KUSTOMIZATION_YAML = "kustomization.yaml"
CONFIGURATIONS_YAML_NAME = "configurations.yaml"


def _kustomization_text(manifest_file_name: str) -> str:
    lines = [
        "resources:",
        f"- {manifest_file_name}",
        "",
        "configurations:",
        f"- {CONFIGURATIONS_YAML_NAME}",
    ]
    return "\n".join(lines) + "\n"


# --- kustomize name-reference configuration ----------------------------------

_CAPI = "cluster.x-k8s.io"
_INFRA = "infrastructure.cluster.x-k8s.io"
_CTRL = "controlplane.cluster.x-k8s.io"
_BOOT = "bootstrap.cluster.x-k8s.io"

_CLUSTER_NAME = "spec/clusterName"
_TMPL_CLUSTER_NAME = "spec/template/spec/clusterName"
_INFRA_REF = "spec/infrastructureRef/name"
_CTRL_REF = "spec/controlPlaneRef/name"
_BOOT_REF = "spec/bootstrap/configRef/name"
_TMPL_BOOT_REF = "spec/template/spec/bootstrap/configRef/name"
_TMPL_INFRA_REF = "spec/template/spec/infrastructureRef/name"
_MT_INFRA_REF = "spec/machineTemplate/infrastructureRef/name"

_MD = "MachineDeployment"
_MP = "MachinePool"
_KCP = "KubeadmControlPlane"

_TO_CLUSTER_INFRA = ((_INFRA_REF, "Cluster"),)
_TO_MACHINE_INFRA = ((_INFRA_REF, "Machine"),)
_MACHINE_TEMPLATE_REFS = ((_TMPL_INFRA_REF, _MD), (_MT_INFRA_REF, _KCP))
_MD_BOOT = ((_TMPL_BOOT_REF, _MD),)
_MP_INFRA = ((_TMPL_INFRA_REF, _MP),)

_NAME_REFERENCES: tuple[tuple[str, str, str, tuple[tuple[str, str], ...]], ...] = (
    (
        "Cluster",
        _CAPI,
        "v1beta1",
        (
            (_CLUSTER_NAME, _MD),
            (_TMPL_CLUSTER_NAME, _MD),
            (_CLUSTER_NAME, _MP),
            (_TMPL_CLUSTER_NAME, _MP),
        ),
    ),
    ("AWSCluster", _INFRA, "v1beta1", _TO_CLUSTER_INFRA),
    ("KubeadmControlPlane", _CTRL, "v1beta1", ((_CTRL_REF, "Cluster"),)),
    (
        "AWSManagedControlPlane",
        _CTRL,
        "v1beta1",
        ((_CTRL_REF, "Cluster"), (_INFRA_REF, "Cluster")),
    ),
    ("AWSManagedControlPlane", _CTRL, "v1beta2", ((_CTRL_REF, "Cluster"),)),
    ("AWSManagedCluster", _INFRA, "v1beta2", _TO_CLUSTER_INFRA),
    ("AWSMachine", _INFRA, "v1beta1", _TO_MACHINE_INFRA),
    ("KubeadmConfig", _BOOT, "v1beta1", ((_BOOT_REF, "Machine"), (_TMPL_BOOT_REF, _MP))),
    ("AWSMachineTemplate", _INFRA, "v1beta2", _MACHINE_TEMPLATE_REFS),
    ("AWSMachineTemplate", _INFRA, "v1beta2", _MACHINE_TEMPLATE_REFS),
    ("AWSMachineTemplate", _INFRA, "v1beta1", _MACHINE_TEMPLATE_REFS),
    ("KubeadmConfigTemplate", _BOOT, "v1beta1", _MD_BOOT),
    ("EKSConfigTemplate", _BOOT, "v1beta2", _MD_BOOT),
    ("EKSConfigTemplate", _BOOT, "v1beta1", _MD_BOOT),
    ("DockerCluster", _INFRA, "v1beta1", _TO_CLUSTER_INFRA),
    ("DockerMachine", _INFRA, "v1beta1", _TO_MACHINE_INFRA),
    ("DockerMachineTemplate", _INFRA, "v1beta1", _MACHINE_TEMPLATE_REFS),
    ("AWSManagedMachinePool", _INFRA, "v1beta2", _MP_INFRA),
    ("AWSManagedMachinePool", _INFRA, "v1beta1", _MP_INFRA),
    ("AWSMachinePool", _INFRA, "v1beta2", _MP_INFRA),
    ("AWSMachinePool", _INFRA, "v1beta1", _MP_INFRA),
    ("EKSConfig", _BOOT, "v1beta2", ((_TMPL_BOOT_REF, _MP),)),
)


def _render_configurations() -> str:
    lines = ["nameReference:"]
    for kind, group, version, field_specs in _NAME_REFERENCES:
        lines += [f"- kind: {kind}", f"  group: {group}", f"  version: {version}"]
        lines.append("  fieldSpecs:")
        for spec_path, spec_kind in field_specs:
            lines += [f"  - path: {spec_path}", f"    kind: {spec_kind}"]
    return "\n".join(lines) + "\n"


CONFIGURATIONS_YAML = _render_configurations()


# --- errors -----------------------------------------------------------------


class BaseClusterError(Exception):
    """A cluster template is unusable or could not be prepared."""

    default_message = "cluster template error"

    def __init__(self, detail: str | None = None) -> None:
        message = self.default_message
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MultipleManifestsError(BaseClusterError):
    default_message = "multiple manifests found"


class NoManifestError(BaseClusterError):
    default_message = "failed to find cluster template manifest file"


class NoKustomizationYamlError(BaseClusterError):
    default_message = "kustomization.yaml is missing"


class NoConfigurationsYamlError(BaseClusterError):
    default_message = "configurations.yaml is missing"


class MultipleClustersError(BaseClusterError):
    default_message = "there are 2 or more clusters"


class NoClusterResourceError(BaseClusterError):
    default_message = "no cluster resource found"


class BuilderFailedRunError(BaseClusterError):
    default_message = "builder failed to run"


class ResourceHasNamespaceError(BaseClusterError):
    default_message = "resource has a namespace defined"


@dataclass(frozen=True)
class PrepareResult:
    """Cluster name found in a manifest, and its corrected text if one is needed."""

    cluster_name: str
    modified_yaml: str | None = None


# --- manifest loading -------------------------------------------------------


def _load_objects(file_name: str | Path) -> list[dict[str, Any]]:
    try:
        text = Path(file_name).read_text(encoding="utf-8")
        docs = list(yaml.safe_load_all(text))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as err:
        raise BuilderFailedRunError(str(err)) from err
    objects = []
    for doc in docs:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise BuilderFailedRunError(f"document in {file_name} is not an object")
        if not doc.get("kind"):
            raise BuilderFailedRunError(f"object 'Kind' is missing in {file_name}")
        metadata = doc.get("metadata")
        if metadata is not None and not isinstance(metadata, dict):
            raise BuilderFailedRunError(f"metadata of {doc['kind']} is not an object")
        objects.append(doc)
    return objects


def _metadata(obj: dict[str, Any]) -> dict[str, Any]:
    return obj.get("metadata") or {}


# --- validation -------------------------------------------------------------


def validate(file_name: str | Path) -> str:
    """Check that the manifest holds exactly one cluster and no namespaces.

    Returns the name of the cluster.
    """
    cluster_name = ""
    for obj in _load_objects(file_name):
        meta = _metadata(obj)
        name = meta.get("name") or ""
        kind = obj["kind"]
        if meta.get("namespace"):
            raise ResourceHasNamespaceError(f"resource: {name}, kind: {kind}")
        if kind == "Cluster":
            if cluster_name:
                raise MultipleClustersError()
            cluster_name = name
    if not cluster_name:
        raise NoClusterResourceError()
    return cluster_name


def _scan_dir(dir_path: Path) -> tuple[list[str], bool, bool]:
    manifests: list[str] = []
    kustomization_found = False
    configurations_found = False
    for entry in sorted(dir_path.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            raise BaseClusterError(f"found subdirectory: {entry.name}")
        if entry.name == KUSTOMIZATION_YAML:
            kustomization_found = True
        elif entry.name == CONFIGURATIONS_YAML_NAME:
            configurations_found = True
        else:
            manifests.append(entry.name)
    return manifests, kustomization_found, configurations_found


def validate_dir(dir_path: str | Path) -> str:
    """Check that a directory is a ready cluster template and return its cluster name."""
    path = Path(dir_path)
    manifests, kustomization_found, configurations_found = _scan_dir(path)
    if len(manifests) > 1:
        raise MultipleManifestsError()
    if not manifests:
        raise NoManifestError()
    if not kustomization_found:
        raise NoKustomizationYamlError()
    if not configurations_found:
        raise NoConfigurationsYamlError()
    return validate(path / manifests[0])


# --- preparation ------------------------------------------------------------


def add_cluster_autoscaler_annotations(
    annotations: dict[str, str] | None, cas_max: int, cas_min: int
) -> tuple[dict[str, str], bool]:
    """Fill in missing autoscaler size annotations; report whether any were added."""
    result = dict(annotations or {})
    modified = False
    if not result.get(CAS_MAX_ANNOTATION):
        result[CAS_MAX_ANNOTATION] = str(cas_max)
        modified = True
    if not result.get(CAS_MIN_ANNOTATION):
        result[CAS_MIN_ANNOTATION] = str(cas_min)
        modified = True
    return result, modified


def _prepare_object(obj: dict[str, Any], cas_max: int, cas_min: int) -> bool:
    modified = False
    meta = obj.get("metadata")
    if meta and meta.get("namespace"):
        del meta["namespace"]
        modified = True
    if obj["kind"] == "MachineDeployment":
        annotations, changed = add_cluster_autoscaler_annotations(
            (meta or {}).get("annotations"), cas_max, cas_min
        )
        if changed:
            if obj.get("metadata") is None:
                obj["metadata"] = {}
            obj["metadata"]["annotations"] = annotations
            modified = True
    return modified


def prepare(
    file_name: str | Path, validate_only: bool, cas_max: int, cas_min: int
) -> PrepareResult:
    """Check a manifest and, unless ``validate_only``, produce a corrected copy.

    Namespaces are removed and autoscaler annotations are added to machine
    deployments. The copy is ``None`` when nothing needed changing.
    """
    cluster_name = ""
    dirty = False
    objects = copy.deepcopy(_load_objects(file_name))
    for obj in objects:
        if obj["kind"] == "Cluster":
            if cluster_name:
                raise MultipleClustersError()
            cluster_name = _metadata(obj).get("name") or ""
        if _prepare_object(obj, cas_max, cas_min):
            dirty = True
    if not cluster_name:
        raise NoClusterResourceError("failed to find cluster resource")
    modified = None
    if not validate_only and dirty:
        modified = yaml.safe_dump_all(objects, sort_keys=True, default_flow_style=False)
    return PrepareResult(cluster_name=cluster_name, modified_yaml=modified)


def prepare_dir(dir_path: str | Path, cas_max: int, cas_min: int) -> tuple[str, str]:
    """Turn a directory into a cluster template.

    Returns the manifest file name and the cluster name.
    """
    path = Path(dir_path)
    manifests, kustomization_found, configurations_found = _scan_dir(path)
    if len(manifests) > 1:
        raise MultipleManifestsError(f"({manifests[0]}, {manifests[1]})")
    if not manifests:
        raise NoManifestError()
    manifest_file_name = manifests[0]
    manifest_path = path / manifest_file_name
    result = prepare(manifest_path, False, cas_max, cas_min)
    if result.modified_yaml is not None:
        manifest_path.write_text(result.modified_yaml, encoding="utf-8")
    if not kustomization_found:
        (path / KUSTOMIZATION_YAML).write_text(
            _kustomization_text(manifest_file_name), encoding="utf-8"
        )
    if not configurations_found:
        (path / CONFIGURATIONS_YAML_NAME).write_text(CONFIGURATIONS_YAML, encoding="utf-8")
    return manifest_file_name, result.cluster_name