"""Self-signed certificates for local development domains (.test/.local/.dev)."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from sitemgr.config import SELF_SIGNED_DAYS, SSL_DIR
from sitemgr.utils import log, run_cmd

TEMPLATE = Path(__file__).resolve().parents[1] / "templates" / "openssl_selfsigned.cnf"
SUFFIXES = (".crt", ".key", ".conf")


def cert_file(domain: str) -> Path:
    return Path(SSL_DIR) / f"{domain}.crt"


def key_file(domain: str) -> Path:
    return Path(SSL_DIR) / f"{domain}.key"


def conf_file(domain: str) -> Path:
    return Path(SSL_DIR) / f"{domain}.conf"


def has_selfsigned(domain: str) -> bool:
    return cert_file(domain).is_file() and key_file(domain).is_file()


def selfsigned_domains() -> list[str]:
    base = Path(SSL_DIR)
    if not base.is_dir():
        return []
    return sorted(p.stem for p in base.glob("*.crt") if key_file(p.stem).is_file())


def render_openssl_config(domain: str) -> str:
    return TEMPLATE.read_text().format(domain=domain)


def build_openssl_command(domain: str, days: int = SELF_SIGNED_DAYS) -> list[str]:
    return [
        "openssl", "req", "-x509", "-nodes",
        "-newkey", "rsa:2048",
        "-days", str(days),
        "-keyout", str(key_file(domain)),
        "-out", str(cert_file(domain)),
        "-config", str(conf_file(domain)),
        "-extensions", "v3_req",
    ]


def generate_selfsigned(domain: str) -> bool:
    """Write the OpenSSL config and (re)generate the key/cert pair."""
    try:
        Path(SSL_DIR).mkdir(parents=True, exist_ok=True)
        conf_file(domain).write_text(render_openssl_config(domain))
        run_cmd(build_openssl_command(domain))
        os.chmod(key_file(domain), 0o600)
        os.chmod(cert_file(domain), 0o644)
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("Self-signed generation failed for %s: %s", domain, err)
        return False
    log(f"PASS: Self-signed certificate written to {cert_file(domain)}")
    return True


def remove_selfsigned_files(domain: str) -> bool:
    removed = False
    for suffix in SUFFIXES:
        path = Path(SSL_DIR) / f"{domain}{suffix}"
        if path.exists():
            path.unlink()
            removed = True
    if removed:
        log(f"PASS: Removed self-signed files for {domain}")
    return removed
