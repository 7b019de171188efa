# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/nodekeeper/certificates/bundle.py
from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from cryptography import x509

log = logging.getLogger("nodekeeper")

_PEM_BLOCK = re.compile(
    r"-----BEGIN CERTIFICATE-----\s*.*?\s*-----END CERTIFICATE-----",
    re.DOTALL,
)


def _normalize(block: str) -> str:
    # line endings differ between the cluster and Windows hosts
    return "\n".join(line.strip() for line in block.strip().splitlines() if line.strip())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CertificateBundle:
    """Ordered, de-duplicated PEM certificate blocks."""

    blocks: Tuple[str, ...] = ()

    @classmethod
    def from_pem(cls, text: str) -> "CertificateBundle":
        seen = []
        for match in _PEM_BLOCK.finditer(text or ""):
            block = _normalize(match.group(0))
            if block not in seen:
                seen.append(block)
        return cls(tuple(seen))

    def __len__(self) -> int:
        return len(self.blocks)

    def __bool__(self) -> bool:
        return bool(self.blocks)

    def merge(self, other: "CertificateBundle") -> "CertificateBundle":
        """
        Union of both bundles, ours first. Never a replace: connections still
        signed by the outgoing CA keep validating until it is dropped upstream
        or expires.
        """
        merged = list(self.blocks)
        for block in other.blocks:
            if block not in merged:
                merged.append(block)
        return CertificateBundle(tuple(merged))

    def prune_expired(self, now: Optional[datetime] = None) -> "CertificateBundle":
        now = now or _utcnow()
        kept = []
        for block in self.blocks:
            try:
                cert = x509.load_pem_x509_certificate(block.encode("utf-8"))
            except ValueError as exc:
                log.warning("[certificates] keeping unparseable certificate block: %s", exc)
                kept.append(block)
                continue
            not_after = cert.not_valid_after_utc
            if not_after < now:
                log.info(
                    "[certificates] dropping expired certificate %s (not after %s)",
                    cert.subject.rfc4514_string(), not_after.isoformat(),
                )
                continue
            kept.append(block)
        return CertificateBundle(tuple(kept))

    def pem(self) -> str:
        if not self.blocks:
            return ""
        return "\n".join(self.blocks) + "\n"

    def digest(self) -> str:
        return hashlib.sha256(self.pem().encode("utf-8")).hexdigest()

    def is_satisfied_by(self, installed: str) -> bool:
        """True when every block of this bundle is present in the installed text."""
        present = set(CertificateBundle.from_pem(installed).blocks)
        return all(block in present for block in self.blocks)
