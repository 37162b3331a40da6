"""Secret payloads — encrypt and decrypt the values of Secret specs.

Only the ``data`` and ``stringData`` values are transformed.  Metadata
stays in clear so that spec files can still be matched by identity.
"""

from __future__ import annotations

import copy
from typing import Any, Callable

from kubesync.utils.crypto import decrypt, encrypt

PAYLOAD_FIELDS = ("data", "stringData")


def is_secret(spec: dict[str, Any]) -> bool:
    return spec.get("kind") == "Secret"


def encrypt_secret(secret: dict[str, Any], key: str) -> dict[str, Any]:
    """Return a copy of *secret* with every payload value encrypted."""
    return _transform(secret, lambda v: encrypt(v, key))


def decrypt_secret(secret: dict[str, Any], key: str) -> dict[str, Any]:
    """Return a copy of *secret* with every payload value decrypted."""
    return _transform(secret, lambda v: decrypt(v, key))


def _transform(secret: dict[str, Any], fn: Callable[[str], str]) -> dict[str, Any]:
    result = copy.deepcopy(secret)
    for field_name in PAYLOAD_FIELDS:
        values = result.get(field_name)
        if isinstance(values, dict):
            result[field_name] = {k: fn(v) if isinstance(v, str) else v for k, v in values.items()}
    return result
