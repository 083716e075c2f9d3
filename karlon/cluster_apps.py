"""Clusters as GitOps applications: their records, cluster apps and repository paths."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from typing import Any, Protocol

from karlon.app import PROFILES_ANNOTATION_KEY

CLUSTER_TYPE_LABEL_KEY = "kkarlon.io/cluster-type"
EXTERNAL_CLUSTER_TYPE_LABEL = "kkarlon.io/cluster-type=external"
ARGO_CLUSTER_SECRET_TYPE_LABEL = "argocd.argoproj.io/secret-type=cluster"

BASE_CLUSTER_NAME_ANNOTATION = "kkarlon.io/basecluster-name"
BASE_CLUSTER_REPO_URL_ANNOTATION = "kkarlon.io/basecluster-repo-url"
BASE_CLUSTER_REPO_REVISION_ANNOTATION = "kkarlon.io/basecluster-repo-revision"
BASE_CLUSTER_REPO_PATH_ANNOTATION = "kkarlon.io/basecluster-repo-path"
BASE_CLUSTER_OVERRIDDEN_ANNOTATION = "kkarlon.io/basecluster-overridden"

GEN1_CLUSTER_LABEL_QUERY = "managed-by=kkarlon,kkarlon-type=cluster"
GEN2_CLUSTER_LABEL_QUERY = "managed-by=kkarlon,kkarlon-type=cluster-app"

APPLICATION_API_VERSION = "argoproj.io/v1alpha1"
APPLICATION_KIND = "Application"
FOREGROUND_FINALIZER = "resources-finalizer.argocd.argoproj.io/foreground"
IN_CLUSTER_SERVER = "https://kubernetes.default.svc"


class ClusterError(Exception):
    """A cluster operation failed."""


@dataclass
class BaseClusterInfo:
    """Where the cluster template of a next-generation cluster lives."""

    name: str = ""
    repo_url: str = ""
    repo_revision: str = ""
    repo_path: str = ""
    overridden: str = ""


@dataclass
class Cluster:
    """A cluster managed by kkarlon.

    ``base_cluster`` is set for next-generation clusters only; ``secret_name``
    only for external clusters.
    """

    name: str
    cluster_spec_name: str = ""
    base_cluster: BaseClusterInfo | None = None
    profile_name: str = ""
    is_external: bool = False
    secret_name: str = ""
    app_profiles: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        text = "Name: " + self.name
        if self.is_external:
            text += ", Type: external"
        elif self.base_cluster is not None:
            text += (
                ", Type: next-gen, Cluster template Repo Url: "
                + self.base_cluster.repo_url
                + ", Cluster template Repo Path: "
                + self.base_cluster.repo_path
            )
        else:
            text += ", Type: previous gen, Cluster Spec: " + self.cluster_spec_name
        if self.profile_name:
            text += ", Profile: " + self.profile_name
        return text


class _AppService(Protocol):
    def create(self, app: dict[str, Any]) -> Any: ...

    def get(self, name: str) -> dict[str, Any]: ...

    def update(self, app: dict[str, Any]) -> Any: ...


def _ignore(group: str, kind: str, pointer: str) -> dict[str, Any]:
    return {"group": group, "kind": kind, "jsonPointers": [pointer]}


def construct_cluster_app(
    argocd_ns: str,
    cluster_name: str,
    base_cluster_name: str,
    repo_url: str,
    repo_revision: str,
    repo_path: str,
    overridden: bool,
) -> dict[str, Any]:
    """Return the cluster application that deploys a cluster template."""
    final_repo_path = f"{repo_path}/{cluster_name}" if overridden else repo_path
    return {
        "apiVersion": APPLICATION_API_VERSION,
        "kind": APPLICATION_KIND,
        "metadata": {
            "name": cluster_name,
            "namespace": argocd_ns,
            "labels": {
                "managed-by": "kkarlon",
                "kkarlon-type": "cluster-app",
                "kkarlon-cluster": cluster_name,
            },
            "annotations": {
                BASE_CLUSTER_NAME_ANNOTATION: base_cluster_name,
                BASE_CLUSTER_REPO_URL_ANNOTATION: repo_url,
                BASE_CLUSTER_REPO_REVISION_ANNOTATION: repo_revision,
                BASE_CLUSTER_REPO_PATH_ANNOTATION: repo_path,
                BASE_CLUSTER_OVERRIDDEN_ANNOTATION: "true" if overridden else "false",
            },
            "finalizers": [FOREGROUND_FINALIZER],
        },
        "spec": {
            # The autoscaler changes replicas; EKS controllers rewrite the
            # control plane version less precisely than requested.
            "ignoreDifferences": [
                _ignore("cluster.x-k8s.io", "MachineDeployment", "/spec/replicas"),
                _ignore(
                    "controlplane.cluster.x-k8s.io",
                    "AWSManagedControlPlane",
                    "/spec/version",
                ),
                _ignore("infrastructure.cluster.x-k8s.io", "AWSMachineTemplate", "/spec"),
            ],
            "source": {
                "repoURL": repo_url,
                "targetRevision": repo_revision,
                "path": final_repo_path,
                "kustomize": {"namePrefix": cluster_name + "-"},
            },
            "destination": {"server": IN_CLUSTER_SERVER, "namespace": cluster_name},
            "syncPolicy": {
                "automated": {"prune": True},
                "syncOptions": ["Prune=true"],
            },
        },
    }


def create_cluster_app(
    app_service: _AppService,
    argocd_ns: str,
    cluster_name: str,
    base_cluster_name: str,
    repo_url: str,
    repo_revision: str,
    repo_path: str,
    create_in_argocd: bool,
    overridden: bool,
) -> dict[str, Any]:
    """Build the cluster application and, if asked, create it on the server."""
    app = construct_cluster_app(
        argocd_ns,
        cluster_name,
        base_cluster_name,
        repo_url,
        repo_revision,
        repo_path,
        overridden,
    )
    if create_in_argocd:
        try:
            app_service.create(app)
        except Exception as err:
            raise ClusterError(f"failed to create cluster application: {err}") from err
    return app


def set_app_profiles(
    app_service: _AppService, name: str, comma_separated_app_profiles: str
) -> None:
    """Record the app profiles a cluster subscribes to on its cluster application."""
    try:
        app = app_service.get(name)
    except Exception as err:
        raise ClusterError(f"failed to get argocd application: {err}") from err
    metadata = app.setdefault("metadata", {})
    if (metadata.get("labels") or {}).get("kkarlon-type") != "cluster-app":
        raise ClusterError("application resource is not an Arlon cluster")
    annotations = metadata.get("annotations")
    if annotations is None:
        annotations = metadata["annotations"] = {}
    annotations[PROFILES_ANNOTATION_KEY] = comma_separated_app_profiles
    try:
        app_service.update(app)
    except Exception as err:
        raise ClusterError(f"failed to update argocd application: {err}") from err


# --- repository paths -------------------------------------------------------


def _join(*parts: str) -> str:
    joined = "/".join(part for part in parts if part)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def cluster_path_from_base_path(base_path: str, cluster_name: str) -> str:
    """Directory of a cluster under ``base_path``."""
    return _join(base_path, cluster_name)


def mgmt_path_from_cluster_path(cluster_path: str) -> str:
    """Management directory of a cluster."""
    return _join(cluster_path, "mgmt")


def workload_path_from_cluster_path(cluster_path: str) -> str:
    """Workload directory of a cluster."""
    return _join(cluster_path, "workload")


def mgmt_path_from_base_path(base_path: str, cluster_name: str) -> str:
    """Management directory of a cluster under ``base_path``."""
    return _join(cluster_path_from_base_path(base_path, cluster_name), "mgmt")


def decompose_path(mgmt_path: str) -> tuple[str, str]:
    """Split a management path into its base path and cluster name."""
    comps = mgmt_path.split("/")
    if len(comps) < 3:
        raise ClusterError("malformed repo path")
    if comps[-1] != "mgmt":
        raise ClusterError(
            f"malformed repo path: unexpected last component ({comps[-1]})"
        )
    return "/".join(comps[:-2]), comps[-2]