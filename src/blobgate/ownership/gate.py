"""Ownership gate for private collections.

Answers "does this credential own this collection?" before any private write
happens. The gate never mutates anything.

Implementations:
- StaticOwnershipGate: collection -> owner credentials mapping from JSON
- HttpOwnershipGate: asks an external ownership authority over HTTP

Environment Variables (read through GatewaySettings):
    BLOBGATE_OWNERS_JSON: JSON object {"<collection>": ["<credential>", ...]}
    BLOBGATE_OWNERSHIP_URL: Base URL of the ownership authority

SECURITY: Credentials are compared in constant time and never logged.
"""

from __future__ import annotations

import hmac
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from urllib.parse import quote

import httpx

from blobgate.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_OWNERSHIP_TIMEOUT_S = 10.0


class OwnershipCheckError(Exception):
    """Raised when the ownership authority cannot give an answer."""

    pass


class OwnershipGate(ABC):
    """Abstract ownership oracle."""

    @abstractmethod
    def is_owner(self, collection: str, credential: str) -> bool:
        """Return True if credential owns collection.

        Raises:
            OwnershipCheckError: If the answer cannot be determined.
        """
        ...


def _constant_time_member(credential: str, candidates: Iterable[str]) -> bool:
    """Compare against every candidate so timing does not leak the match position."""
    provided = credential.encode("utf-8")
    matched = False
    for candidate in candidates:
        if hmac.compare_digest(provided, candidate.encode("utf-8")):
            matched = True
    return matched


class StaticOwnershipGate(OwnershipGate):
    """Ownership from a fixed collection -> credentials mapping."""

    def __init__(self, owners: Mapping[str, Iterable[str]]) -> None:
        self._owners: dict[str, tuple[str, ...]] = {
            collection: tuple(credentials) for collection, credentials in owners.items()
        }

    @classmethod
    def from_json(cls, raw: str | None) -> StaticOwnershipGate:
        """Parse the BLOBGATE_OWNERS_JSON document.

        An empty document yields a gate that rejects everyone.

        Raises:
            ConfigurationError: If the document is not a mapping of
                collection names to credential lists.
        """
        if not raw:
            return cls({})
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError("Owners mapping is not valid JSON") from e

        if not isinstance(parsed, dict):
            raise ConfigurationError("Owners mapping must be a JSON object")

        owners: dict[str, list[str]] = {}
        for collection, credentials in parsed.items():
            if isinstance(credentials, str):
                credentials = [credentials]
            if not isinstance(credentials, list) or not all(
                isinstance(c, str) for c in credentials
            ):
                raise ConfigurationError(
                    f"Owners for collection {collection!r} must be a list of strings"
                )
            owners[collection] = credentials
        return cls(owners)

    def is_owner(self, collection: str, credential: str) -> bool:
        if not credential:
            return False
        return _constant_time_member(credential, self._owners.get(collection, ()))


class HttpOwnershipGate(OwnershipGate):
    """Ownership answered by an external authority.

    Issues GET {base_url}/collections/{collection}/owners/{credential} and
    expects a JSON body {"owner": true|false}. A 404 means "not an owner".
    """

    def __init__(
        self,
        base_url: str,
        *,
        http_client: httpx.Client | None = None,
        timeout_s: float = DEFAULT_OWNERSHIP_TIMEOUT_S,
    ) -> None:
        """Initialize the HTTP gate.

        Args:
            base_url: Base URL of the ownership authority.
            http_client: Optional httpx.Client for dependency injection (testing).
            timeout_s: Request timeout when the gate creates its own client.
        """
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client or httpx.Client(timeout=timeout_s)

    def is_owner(self, collection: str, credential: str) -> bool:
        if not credential:
            return False

        url = (
            f"{self._base_url}/collections/{quote(collection, safe='')}"
            f"/owners/{quote(credential, safe='')}"
        )
        try:
            response = self._http_client.get(url)
        except httpx.HTTPError as e:
            raise OwnershipCheckError(f"Ownership authority unreachable: {type(e).__name__}") from e

        if response.status_code == 404:
            return False
        if response.status_code != 200:
            raise OwnershipCheckError(
                f"Ownership authority returned HTTP {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise OwnershipCheckError("Ownership authority returned invalid JSON") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("owner"), bool):
            raise OwnershipCheckError("Ownership authority response missing 'owner' flag")
        return bool(payload["owner"])

    def close(self) -> None:
        self._http_client.close()
