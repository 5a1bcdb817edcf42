"""Certificate identity — opaque tokens and their public URLs.

A certificate id is minted once per unit and never depends on the
unit's rank, so it survives any amount of resequencing.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import quote

UrlBuilder = Callable[[str, str], str]


def generate_certificate_id() -> str:
    """Random, globally unique, non-guessable token (UUID4, 122 random bits)."""
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class CertificateUrlBuilder:
    """Derive the public certificate URL from ``unit_id`` and token.

    The base URL is injected; nothing here reads process configuration.
    """

    base_url: str
    path: str = "/certificate"

    def __call__(self, unit_id: str, certificate_id: str) -> str:
        base = self.base_url.rstrip("/")
        path = "/" + self.path.strip("/") if self.path.strip("/") else ""
        return f"{base}{path}/{quote(unit_id, safe='')}?token={quote(certificate_id, safe='')}"
