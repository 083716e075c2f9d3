"""Repository credentials registered with the GitOps server."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol

REPOSITORY_SECRET_SELECTOR = "argocd.argoproj.io/secret-type=repository"


class RepoCredsNotFoundError(LookupError):
    """No registered repository matches the requested URL."""


@dataclass(frozen=True)
class RepoCreds:
    """URL and basic-auth credentials of a git repository."""

    url: str
    username: str = ""
    password: str = ""


class _SecretsApi(Protocol):
    def list(self, label_selector: str) -> Iterable[Mapping[str, bytes]]: ...


def _text(data: Mapping[str, bytes], key: str) -> str:
    return bytes(data.get(key) or b"").decode("utf-8", errors="replace")


def get_repo_creds_from_argocd(secrets_api: _SecretsApi, repo_url: str) -> RepoCreds:
    """Return the credentials of the first repository secret whose URL is ``repo_url``.

    Each listed item is the data mapping of one secret.
    """
    try:
        secrets = list(secrets_api.list(REPOSITORY_SECRET_SELECTOR))
    except Exception as err:
        raise RuntimeError(f"failed to list secrets: {err}") from err
    for data in secrets:
        if _text(data, "url") == repo_url:
            return RepoCreds(
                url=_text(data, "url"),
                username=_text(data, "username"),
                password=_text(data, "password"),
            )
    raise RepoCredsNotFoundError(
        f"did not find argocd repository matching {repo_url} (did you register it?)"
    )