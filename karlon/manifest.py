"""Generation of a multi-document cluster API manifest for a hosted control plane cluster."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import yaml

SERVICE_DOMAIN = "default-service.k8s.byo.example.com"
CONSOLE_ORIGIN = "https://regionone.example.com"

API_SERVER_PORT = 443
POD_CIDR = "10.244.0.0/16"
SERVICE_CIDR = "10.96.0.0/16"
CAPI_VERSION = "v1.32"
METRICS_SERVER_VERSION = "0.6.4"
BUNDLE_REPO = "quay.io/platform9"
BUNDLE_TYPE = "k8s"

BYO_API_VERSION = "infrastructure.cluster.x-k8s.io/v1beta1"
CLUSTER_API_VERSION = "cluster.x-k8s.io/v1beta1"
CONTROL_PLANE_API_VERSION = "controlplane.platform9.io/v1alpha1"
BOOTSTRAP_API_VERSION = "bootstrap.cluster.x-k8s.io/v1beta1"

KONNECTIVITY_VERSION = "v0.0.32"


@dataclass
class SimpleClusterInput:
    """The fields a cluster manifest is generated from."""

    cluster_name: str
    namespace: str
    hcp_name: str = ""
    control_plane_endpoint_host: str = ""
    oidc_config_map: str = ""
    oidc_config_map_cp: str = ""
    replicas: int = 1
    k8s_version: str = ""


def _with_v(version: str) -> str:
    if version and not version.startswith("v"):
        return "v" + version
    return version


def _without_v(version: str) -> str:
    return version[1:] if version.startswith("v") else version


def _meta(name: str, namespace: str) -> dict[str, Any]:
    return {"name": name, "namespace": namespace}


def generate_cluster_manifest(
    cluster_name: str,
    namespace: str,
    hcp_name: str,
    endpoint_host: str,
    oidc_config_map: str,
    oidc_config_map_cp: str,
    replicas: int,
    k8s_version: str,
) -> str:
    """Return the YAML documents describing a cluster, separated by ``---``.

    Names of the control plane, its endpoint and the OIDC config maps follow
    fixed conventions derived from ``cluster_name``; the arguments given for
    them are not used.
    """
    del hcp_name, endpoint_host, oidc_config_map, oidc_config_map_cp
    hcp = cluster_name + "cp"
    endpoint = f"{hcp}.{SERVICE_DOMAIN}"
    konnectivity_host = f"konnectivity-{hcp}.{SERVICE_DOMAIN}"
    oidc_map = "oidc-auth-" + cluster_name
    oidc_map_cp = "oidc-auth-" + hcp
    version = _with_v(k8s_version)

    cluster = {
        "apiVersion": CLUSTER_API_VERSION,
        "kind": "Cluster",
        "metadata": {
            **_meta(cluster_name, namespace),
            "labels": {
                "cas-capi-version": CAPI_VERSION,
                "core-addons": "enabled",
                "metrics-server": METRICS_SERVER_VERSION,
                "proxy-addons": "enabled",
            },
        },
        "spec": {
            "clusterNetwork": {
                "apiServerPort": API_SERVER_PORT,
                "pods": {"cidrBlocks": [POD_CIDR]},
                "services": {"cidrBlocks": [SERVICE_CIDR]},
            },
            "controlPlaneRef": {
                "apiVersion": CONTROL_PLANE_API_VERSION,
                "kind": "HostedControlPlane",
                "name": hcp,
                "namespace": namespace,
            },
            "infrastructureRef": {
                "apiVersion": BYO_API_VERSION,
                "kind": "ByoCluster",
                "name": cluster_name,
                "namespace": namespace,
            },
        },
    }
    byo_cluster = {
        "apiVersion": BYO_API_VERSION,
        "kind": "ByoCluster",
        "metadata": _meta(cluster_name, namespace),
        "spec": {
            "bundleLookupBaseRegistry": BUNDLE_REPO,
            "controlPlaneEndpoint": {"host": endpoint, "port": API_SERVER_PORT},
        },
    }
    hosted_control_plane = {
        "apiVersion": CONTROL_PLANE_API_VERSION,
        "kind": "HostedControlPlane",
        "metadata": _meta(hcp, namespace),
        "spec": {
            "addons": {
                "coreDNS": {},
                "konnectivity": {
                    "agent": {
                        "extraArgs": [
                            f"--proxy-server-host={konnectivity_host}",
                            "--proxy-server-port=443",
                        ],
                        "image": "registry.k8s.io/kas-network-proxy/proxy-agent",
                        "tolerations": [
                            {"key": "CriticalAddonsOnly", "operator": "Exists"}
                        ],
                        "version": KONNECTIVITY_VERSION,
                    },
                    "server": {
                        "image": "registry.k8s.io/kas-network-proxy/proxy-server",
                        "port": 8132,
                        "version": KONNECTIVITY_VERSION,
                    },
                },
            },
            "apiServer": {
                "extraArgs": [
                    "--cloud-provider=external",
                    "--cors-allowed-origins="
                    + ",".join([CONSOLE_ORIGIN, CONSOLE_ORIGIN + "/"] * 2),
                    "--advertise-address=10.96.0.40",
                    "--authentication-config=/etc/kubernetes/oidc-auth/oidc.yaml",
                ],
                "extraVolumeMounts": [
                    {
                        "mountPath": "/etc/ssl/host-certs",
                        "name": "etc-ssl-certs-from-host",
                        "readOnly": True,
                    },
                    {
                        "mountPath": "/etc/kubernetes/oidc-auth",
                        "name": "oidc-auth",
                        "readOnly": True,
                    },
                ],
                "resources": {},
            },
            "controllerManager": {
                "extraArgs": ["--cloud-provider=external"],
                "resources": {},
            },
            "extraCertSANs": [konnectivity_host, endpoint],
            "extraVolumes": [
                {"configMap": {"name": oidc_map}, "name": "oidc-auth"},
                {"configMap": {"name": oidc_map_cp}, "name": "oidc-auth"},
            ],
            "hcpClass": "default",
            "hostname": endpoint,
            "kubelet": {
                "cgroupfs": "systemd",
                "preferredAddressTypes": ["InternalIP", "ExternalIP", "Hostname"],
            },
            "scheduler": {"resources": {}},
            "version": _without_v(version),
        },
    }
    byo_machine_template = {
        "apiVersion": BYO_API_VERSION,
        "kind": "ByoMachineTemplate",
        "metadata": _meta(cluster_name, namespace),
        "spec": {
            "template": {
                "spec": {
                    "installerRef": {
                        "apiVersion": BYO_API_VERSION,
                        "kind": "K8sInstallerConfigTemplate",
                        "name": cluster_name,
                        "namespace": namespace,
                    }
                }
            }
        },
    }
    kubeadm_config_template = {
        "apiVersion": BOOTSTRAP_API_VERSION,
        "kind": "KubeadmConfigTemplate",
        "metadata": _meta(cluster_name, namespace),
        "spec": {"template": {"spec": {}}},
    }
    machine_deployment = {
        "apiVersion": CLUSTER_API_VERSION,
        "kind": "MachineDeployment",
        "metadata": _meta(cluster_name, namespace),
        "spec": {
            "clusterName": cluster_name,
            "replicas": replicas,
            "template": {
                "spec": {
                    "bootstrap": {
                        "configRef": {
                            "apiVersion": BOOTSTRAP_API_VERSION,
                            "kind": "KubeadmConfigTemplate",
                            "name": cluster_name,
                        }
                    },
                    "clusterName": cluster_name,
                    "infrastructureRef": {
                        "apiVersion": BYO_API_VERSION,
                        "kind": "ByoMachineTemplate",
                        "name": cluster_name,
                    },
                    "version": _with_v(version),
                }
            },
        },
    }
    installer_config_template = {
        "apiVersion": BYO_API_VERSION,
        "kind": "K8sInstallerConfigTemplate",
        "metadata": _meta(cluster_name, namespace),
        "spec": {
            "template": {
                "spec": {"bundleRepo": BUNDLE_REPO, "bundleType": BUNDLE_TYPE}
            }
        },
    }
    resources = [
        cluster,
        byo_cluster,
        hosted_control_plane,
        byo_machine_template,
        kubeadm_config_template,
        machine_deployment,
        installer_config_template,
    ]
    try:
        docs = [
            yaml.safe_dump(obj, sort_keys=True, default_flow_style=False)
            for obj in resources
        ]
    except yaml.YAMLError as err:
        raise ValueError(f"failed to marshal manifest: {err}") from err
    return "\n---\n".join(docs)