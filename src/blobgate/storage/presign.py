"""HMAC-signed download URLs for backends without native presigning.

Canonical string: "{key}.{expires}" where expires is Unix epoch seconds.
Signature: hex digest of HMAC-SHA256(secret, canonical string).

URL shape: {base_url}/blobs/{key}?expires=<epoch>&signature=<hex>

SECURITY: Never log the secret or full signed URLs.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from urllib.parse import quote, urlencode

BLOB_ROUTE_PREFIX = "/blobs"


def compute_url_signature(secret: str, key: str, expires: int) -> str:
    """Compute the HMAC-SHA256 signature for a key and expiry."""
    canonical = f"{key}.{expires}".encode()
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=canonical,
        digestmod=hashlib.sha256,
    ).hexdigest()


class UrlSigner:
    """Issues and verifies expiring download URLs for object keys."""

    def __init__(self, secret: str, base_url: str) -> None:
        if not secret:
            raise ValueError("URL signing secret must not be empty")
        self._secret = secret
        self._base_url = base_url.rstrip("/")

    def sign(self, key: str, *, expires_in: int, now: int | None = None) -> str:
        """Return a signed URL for key valid for expires_in seconds."""
        issued_at = int(time.time()) if now is None else now
        expires = issued_at + expires_in
        signature = compute_url_signature(self._secret, key, expires)
        query = urlencode({"expires": expires, "signature": signature})
        return f"{self._base_url}{BLOB_ROUTE_PREFIX}/{quote(key)}?{query}"

    def verify(self, key: str, expires: int, signature: str, *, now: int | None = None) -> bool:
        """Check a signature in constant time and that it has not expired."""
        current = int(time.time()) if now is None else now
        if expires < current:
            return False
        expected = compute_url_signature(self._secret, key, expires)
        return hmac.compare_digest(expected, signature)
