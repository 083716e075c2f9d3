"""Argo CD application objects, cluster template checks and Cluster API manifests."""

__version__ = "0.1.0"