"""Certificate discovery and expiry reporting."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from cryptography import x509

from sitemgr.config import SSL_WARN_DAYS
from sitemgr.certs import letsencrypt, selfsigned

LETSENCRYPT = "letsencrypt"
SELF_SIGNED = "self-signed"

VALID = "valid"
EXPIRING = "expiring"
EXPIRED = "expired"
MISSING = "missing"
UNREADABLE = "unreadable"


@dataclass
class CertStatus:
    domain: str
    kind: str | None
    path: Path | None
    expires: datetime | None
    days_left: int | None
    state: str


def read_expiry(path: Path) -> datetime:
    cert = x509.load_pem_x509_certificate(path.read_bytes())
    return cert.not_valid_after_utc


def classify(days_left: int, warn_days: int = SSL_WARN_DAYS) -> str:
    if days_left < 0:
        return EXPIRED
    if days_left <= warn_days:
        return EXPIRING
    return VALID


def locate(domain: str) -> tuple[str | None, Path | None]:
    if letsencrypt.has_letsencrypt(domain):
        return LETSENCRYPT, letsencrypt.fullchain_file(domain)
    if selfsigned.has_selfsigned(domain):
        return SELF_SIGNED, selfsigned.cert_file(domain)
    return None, None


def cert_domains() -> list[str]:
    return sorted(set(letsencrypt.letsencrypt_domains()) | set(selfsigned.selfsigned_domains()))


def domain_status(domain: str, now: datetime | None = None) -> CertStatus:
    kind, path = locate(domain)
    if path is None:
        return CertStatus(domain, None, None, None, None, MISSING)
    try:
        expires = read_expiry(path)
    except (OSError, ValueError) as err:
        logging.error("Could not read certificate %s: %s", path, err)
        return CertStatus(domain, kind, path, None, None, UNREADABLE)
    current = now or datetime.now(timezone.utc)
    days_left = (expires - current).days
    return CertStatus(domain, kind, path, expires, days_left, classify(days_left))


def collect(domain: str | None = None, now: datetime | None = None) -> list[CertStatus]:
    domains = [domain] if domain else cert_domains()
    return [domain_status(name, now) for name in domains]
