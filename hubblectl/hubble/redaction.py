"""Redaction of key material in values trees and error text."""

from __future__ import annotations

import base64
import binascii
import re
from collections.abc import Mapping
from typing import Any

REDACTED = "[--redacted-- use --redact-helm-certificate-keys=false to show]"

_SECRET_KEYS = frozenset({"cert", "key", "crt", "ca.crt", "ca.key", "tls.crt", "tls.key"})

_PEM_BLOCK = re.compile(
    r"-----BEGIN [A-Z0-9 ]+-----.*?(?:-----END [A-Z0-9 ]+-----|\Z)", re.DOTALL
)
# "-----BEGIN" base64-encoded starts with "LS0tLS1CRUdJTi"
_B64_PEM = re.compile(r"LS0tLS1CRUdJTi[A-Za-z0-9+/=]*")


def _looks_like_pem(value: str) -> bool:
    if "-----BEGIN" in value:
        return True
    if not value.startswith("LS0tLS1CRUdJTi"):
        return False
    try:
        return base64.b64decode(value, validate=True).startswith(b"-----BEGIN")
    except (binascii.Error, ValueError):
        return False


def redact_values(tree: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``tree`` with certificate and key material replaced.

    A leaf is redacted when its key names key material (``cert``, ``key``,
    ``tls.crt``...) and it holds a non-empty string, or when its value is PEM
    text, raw or base64-encoded.
    """

    def _walk(node: Any, key: str | None) -> Any:
        if isinstance(node, Mapping):
            return {k: _walk(v, str(k)) for k, v in node.items()}
        if isinstance(node, list):
            return [_walk(item, None) for item in node]
        if isinstance(node, str) and node:
            if key in _SECRET_KEYS or _looks_like_pem(node):
                return REDACTED
        return node

    return _walk(tree, None)


def scrub_text(text: str) -> str:
    """Remove PEM blocks from free text such as error messages."""
    text = _PEM_BLOCK.sub("[redacted PEM]", text)
    return _B64_PEM.sub("[redacted PEM]", text)
