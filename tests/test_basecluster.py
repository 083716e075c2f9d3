from pathlib import Path

import pytest
import yaml

from karlon.basecluster import (
    CAS_MAX_ANNOTATION,
    CAS_MIN_ANNOTATION,
    CONFIGURATIONS_YAML,
    BaseClusterError,
    BuilderFailedRunError,
    MultipleClustersError,
    MultipleManifestsError,
    NoClusterResourceError,
    NoConfigurationsYamlError,
    NoKustomizationYamlError,
    NoManifestError,
    PrepareResult,
    ResourceHasNamespaceError,
    add_cluster_autoscaler_annotations,
    prepare,
    prepare_dir,
    validate,
    validate_dir,
)

DEFAULT_CAS_MIN = 1
DEFAULT_CAS_MAX = 9

CLUSTER = """apiVersion: cluster.x-k8s.io/v1beta1
kind: Cluster
metadata:
  name: capi-quickstart
spec:
  infrastructureRef:
    kind: DockerCluster
    name: capi-quickstart
"""

OTHER_CLUSTER = CLUSTER.replace("capi-quickstart", "other-cluster")

DOCKER_CLUSTER = """apiVersion: infrastructure.cluster.x-k8s.io/v1beta1
kind: DockerCluster
metadata:
  name: capi-quickstart
"""

MACHINE_DEPLOYMENT = """apiVersion: cluster.x-k8s.io/v1beta1
kind: MachineDeployment
metadata:
  name: capi-quickstart-md-0
spec:
  clusterName: capi-quickstart
  replicas: 3
"""

NAMESPACED_DOCKER_CLUSTER = DOCKER_CLUSTER.replace(
    "  name: capi-quickstart\n", "  name: capi-quickstart\n  namespace: default\n"
)
NAMESPACED_CLUSTER = CLUSTER.replace(
    "  name: capi-quickstart\n", "  name: capi-quickstart\n  namespace: default\n"
)

GOOD_MANIFEST = "---\n".join([CLUSTER, DOCKER_CLUSTER])
KUSTOMIZATION = "resources:\n- manifest.yaml\n\nconfigurations:\n- configurations.yaml\n"


def _make_dir(root: Path, files: dict[str, str]) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for name, content in files.items():
        (root / name).write_text(content)
    return root


VALIDATION_CASES = [
    (
        "01_no_configurations",
        {"kustomization.yaml": KUSTOMIZATION, "manifest.yaml": GOOD_MANIFEST},
        NoConfigurationsYamlError,
    ),
    (
        "02_no_kustomization",
        {"configurations.yaml": CONFIGURATIONS_YAML, "manifest.yaml": GOOD_MANIFEST},
        NoKustomizationYamlError,
    ),
    (
        "03_no_manifest",
        {"kustomization.yaml": KUSTOMIZATION, "configurations.yaml": CONFIGURATIONS_YAML},
        NoManifestError,
    ),
    (
        "04_multiple_manifests",
        {
            "kustomization.yaml": KUSTOMIZATION,
            "configurations.yaml": CONFIGURATIONS_YAML,
            "manifest.yaml": GOOD_MANIFEST,
            "manifest2.yaml": GOOD_MANIFEST,
        },
        MultipleManifestsError,
    ),
    (
        "05_has_namespace",
        {
            "kustomization.yaml": KUSTOMIZATION,
            "configurations.yaml": CONFIGURATIONS_YAML,
            "manifest.yaml": "---\n".join([CLUSTER, NAMESPACED_DOCKER_CLUSTER]),
        },
        ResourceHasNamespaceError,
    ),
    (
        "06_multiple_clusters",
        {
            "kustomization.yaml": KUSTOMIZATION,
            "configurations.yaml": CONFIGURATIONS_YAML,
            "manifest.yaml": "---\n".join([CLUSTER, OTHER_CLUSTER]),
        },
        MultipleClustersError,
    ),
    (
        "07_no_cluster",
        {
            "kustomization.yaml": KUSTOMIZATION,
            "configurations.yaml": CONFIGURATIONS_YAML,
            "manifest.yaml": DOCKER_CLUSTER,
        },
        NoClusterResourceError,
    ),
    (
        "09_invalid_manifest",
        {
            "kustomization.yaml": KUSTOMIZATION,
            "configurations.yaml": CONFIGURATIONS_YAML,
            "manifest.yaml": "kind: [unclosed\n  : : :\n",
        },
        BuilderFailedRunError,
    ),
]


@pytest.mark.parametrize("dir_name,files,error", VALIDATION_CASES)
def test_validation_errors(tmp_path, dir_name, files, error):
    directory = _make_dir(tmp_path / dir_name, files)
    with pytest.raises(error):
        validate_dir(directory)


def test_validation_ok(tmp_path):
    directory = _make_dir(
        tmp_path / "08_ok",
        {
            "kustomization.yaml": KUSTOMIZATION,
            "configurations.yaml": CONFIGURATIONS_YAML,
            "manifest.yaml": GOOD_MANIFEST,
        },
    )
    assert validate_dir(directory) == "capi-quickstart"


def test_errors_share_base_class(tmp_path):
    directory = _make_dir(tmp_path / "d", {"manifest.yaml": DOCKER_CLUSTER})
    with pytest.raises(BaseClusterError):
        validate(directory / "manifest.yaml")


def test_namespace_error_names_resource(tmp_path):
    manifest = tmp_path / "m.yaml"
    manifest.write_text("---\n".join([CLUSTER, NAMESPACED_DOCKER_CLUSTER]))
    with pytest.raises(ResourceHasNamespaceError) as info:
        validate(manifest)
    assert "resource: capi-quickstart, kind: DockerCluster" in str(info.value)


def test_object_without_kind_fails_builder(tmp_path):
    manifest = tmp_path / "m.yaml"
    manifest.write_text("metadata:\n  name: x\n")
    with pytest.raises(BuilderFailedRunError):
        validate(manifest)


def test_missing_file_fails_builder(tmp_path):
    with pytest.raises(BuilderFailedRunError):
        validate(tmp_path / "absent.yaml")


def test_subdirectory_rejected(tmp_path):
    directory = _make_dir(tmp_path / "d", {"manifest.yaml": GOOD_MANIFEST})
    (directory / "sub").mkdir()
    with pytest.raises(BaseClusterError, match="found subdirectory: sub"):
        validate_dir(directory)


def _requires_prep(tmp_path: Path) -> Path:
    return _make_dir(
        tmp_path / "requires_prep",
        {
            "manifest.yaml": "---\n".join(
                [NAMESPACED_CLUSTER, NAMESPACED_DOCKER_CLUSTER, MACHINE_DEPLOYMENT]
            )
        },
    )


def test_preparation_requires_prep(tmp_path):
    directory = _requires_prep(tmp_path)
    with pytest.raises(BaseClusterError):
        validate_dir(directory)
    manifest_file_name, cluster_name = prepare_dir(
        directory, DEFAULT_CAS_MAX, DEFAULT_CAS_MIN
    )
    assert manifest_file_name == "manifest.yaml"
    assert cluster_name == "capi-quickstart"
    assert validate_dir(directory) == "capi-quickstart"


def test_preparation_writes_files(tmp_path):
    directory = _requires_prep(tmp_path)
    prepare_dir(directory, DEFAULT_CAS_MAX, DEFAULT_CAS_MIN)
    assert (directory / "kustomization.yaml").read_text() == KUSTOMIZATION
    assert (directory / "configurations.yaml").read_text() == CONFIGURATIONS_YAML
    objects = list(yaml.safe_load_all((directory / "manifest.yaml").read_text()))
    assert all("namespace" not in obj["metadata"] for obj in objects)
    md = next(obj for obj in objects if obj["kind"] == "MachineDeployment")
    assert md["metadata"]["annotations"] == {
        CAS_MAX_ANNOTATION: "9",
        CAS_MIN_ANNOTATION: "1",
    }
    assert md["spec"]["replicas"] == 3


def test_preparation_two_clusters(tmp_path):
    directory = _make_dir(
        tmp_path / "requires_prep_2",
        {"manifest.yaml": "---\n".join([NAMESPACED_CLUSTER, OTHER_CLUSTER])},
    )
    with pytest.raises(BaseClusterError):
        validate_dir(directory)
    with pytest.raises(MultipleClustersError, match="there are 2 or more clusters"):
        prepare_dir(directory, DEFAULT_CAS_MAX, DEFAULT_CAS_MIN)


def test_prepare_dir_multiple_manifests(tmp_path):
    directory = _make_dir(
        tmp_path / "d", {"a.yaml": GOOD_MANIFEST, "b.yaml": GOOD_MANIFEST}
    )
    with pytest.raises(MultipleManifestsError, match=r"\(a.yaml, b.yaml\)"):
        prepare_dir(directory, DEFAULT_CAS_MAX, DEFAULT_CAS_MIN)


def test_prepare_dir_no_manifest(tmp_path):
    directory = _make_dir(tmp_path / "d", {"kustomization.yaml": KUSTOMIZATION})
    with pytest.raises(NoManifestError):
        prepare_dir(directory, DEFAULT_CAS_MAX, DEFAULT_CAS_MIN)


def test_prepare_validate_only_returns_no_copy(tmp_path):
    manifest = tmp_path / "m.yaml"
    manifest.write_text("---\n".join([NAMESPACED_CLUSTER, MACHINE_DEPLOYMENT]))
    result = prepare(manifest, True, DEFAULT_CAS_MAX, DEFAULT_CAS_MIN)
    assert result == PrepareResult(cluster_name="capi-quickstart", modified_yaml=None)


def test_prepare_clean_manifest_unchanged(tmp_path):
    manifest = tmp_path / "m.yaml"
    manifest.write_text(GOOD_MANIFEST)
    result = prepare(manifest, False, DEFAULT_CAS_MAX, DEFAULT_CAS_MIN)
    assert result.cluster_name == "capi-quickstart"
    assert result.modified_yaml is None


def test_prepare_no_cluster(tmp_path):
    manifest = tmp_path / "m.yaml"
    manifest.write_text(DOCKER_CLUSTER)
    with pytest.raises(NoClusterResourceError):
        prepare(manifest, False, DEFAULT_CAS_MAX, DEFAULT_CAS_MIN)


def test_annotations_added_when_missing():
    annotations, changed = add_cluster_autoscaler_annotations(None, 9, 1)
    assert changed is True
    assert annotations == {CAS_MAX_ANNOTATION: "9", CAS_MIN_ANNOTATION: "1"}


def test_annotations_existing_kept():
    existing = {CAS_MAX_ANNOTATION: "5", CAS_MIN_ANNOTATION: "2", "other": "x"}
    annotations, changed = add_cluster_autoscaler_annotations(existing, 9, 1)
    assert changed is False
    assert annotations == existing


def test_annotations_empty_values_replaced():
    annotations, changed = add_cluster_autoscaler_annotations(
        {CAS_MAX_ANNOTATION: "", CAS_MIN_ANNOTATION: "3"}, 7, 1
    )
    assert changed is True
    assert annotations == {CAS_MAX_ANNOTATION: "7", CAS_MIN_ANNOTATION: "3"}