"""Applications, represented as ApplicationSets with a cluster list generator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterable, Protocol

PROFILES_ANNOTATION_KEY = "kkarlon.io/profiles"
APP_TYPE_LABEL = "kkarlon-type"
APP_TYPE_VALUE = "application"


class AppError(Exception):
    """An application operation failed."""


@dataclass
class ListGenerator:
    """A list generator; each element is a JSON object, e.g. cluster_name and cluster_server."""

    elements: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ApplicationSet:
    """An ApplicationSet deploying one source to the clusters in its generator.

    A ``None`` entry in ``generators`` stands for a generator that is not a list.
    ``automated_prune`` is ``None`` when automatic sync is off.
    """

    KIND: ClassVar[str] = "ApplicationSet"
    API_VERSION: ClassVar[str] = "argoproj.io/v1alpha1"

    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    generators: list[ListGenerator | None] = field(default_factory=list)
    template_name: str = ""
    destination_namespace: str = ""
    destination_server: str = ""
    project: str = ""
    source_path: str = ""
    source_repo_url: str = ""
    source_target_revision: str = ""
    automated_prune: bool | None = None


class _AppClient(Protocol):
    def list_application_sets(
        self, namespace: str, label_selector: dict[str, str]
    ) -> Iterable[ApplicationSet]: ...

    def get_application_set(self, namespace: str, name: str) -> ApplicationSet: ...

    def delete_application_set(self, app: ApplicationSet) -> None: ...


def list_apps(client: _AppClient, namespace: str) -> list[ApplicationSet]:
    """Return the application sets in ``namespace`` that are applications."""
    try:
        items = client.list_application_sets(namespace, {APP_TYPE_LABEL: APP_TYPE_VALUE})
        return list(items)
    except Exception as err:
        raise AppError(f"failed to list applicationsets: {err}") from err


def create_app(
    namespace: str,
    name: str,
    dest_namespace: str,
    project: str,
    src_path: str,
    src_repo_url: str,
    src_target_revision: str,
    auto_sync: bool,
    auto_prune: bool,
) -> ApplicationSet:
    """Build a new application with an empty cluster list."""
    return ApplicationSet(
        name=name,
        namespace=namespace,
        labels={APP_TYPE_LABEL: APP_TYPE_VALUE, "managed-by": "kkarlon"},
        generators=[ListGenerator()],
        template_name="{{cluster_name}}-app-" + name,
        destination_namespace=dest_namespace,
        destination_server="{{cluster_server}}",
        project=project,
        source_path=src_path,
        source_repo_url=src_repo_url,
        source_target_revision=src_target_revision,
        automated_prune=auto_prune if auto_sync else None,
    )


def delete_app(client: _AppClient, namespace: str, name: str) -> None:
    """Delete an application; refuse application sets that are not applications."""
    try:
        app = client.get_application_set(namespace, name)
    except Exception as err:
        raise AppError(f"failed to get applicationset: {err}") from err
    if app.labels.get(APP_TYPE_LABEL) != APP_TYPE_VALUE:
        raise AppError(f"applicationset {name} is not an kkarlon app")
    try:
        client.delete_application_set(app)
    except Exception as err:
        raise AppError(f"failed to delete applicationset: {err}") from err