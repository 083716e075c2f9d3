"""Configuration bundles stored as secrets."""

from __future__ import annotations

import re
from typing import Protocol

MAX_LEN_RFC1123 = 63

_RFC1123 = re.compile(
    r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$",
    re.MULTILINE,
)


class BundleError(Exception):
    """A bundle operation failed."""


class _SecretsApi(Protocol):
    def delete(self, name: str) -> None: ...


def is_valid_k8s_name(name: str) -> bool:
    """Return whether ``name`` is a usable RFC 1123 resource name."""
    if not name or len(name.encode("utf-8")) > MAX_LEN_RFC1123:
        return False
    return _RFC1123.search(name) is not None


def delete_bundle(secrets_api: _SecretsApi, bundle_name: str) -> None:
    """Delete the secret that holds the bundle."""
    try:
        secrets_api.delete(bundle_name)
    except Exception as err:
        raise BundleError(f"failed to delete bundle: {err}") from err