"""Let's Encrypt issuance and renewal through certbot's nginx plugin."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from sitemgr.config import LETSENCRYPT_LIVE
from sitemgr.utils import command_exists, log, run_cmd, status_info

CERTBOT_PACKAGES = ("certbot", "python3-certbot-nginx")


def live_dir(domain: str) -> Path:
    return Path(LETSENCRYPT_LIVE) / domain


def fullchain_file(domain: str) -> Path:
    return live_dir(domain) / "fullchain.pem"


def has_letsencrypt(domain: str) -> bool:
    return fullchain_file(domain).is_file()


def letsencrypt_domains() -> list[str]:
    base = Path(LETSENCRYPT_LIVE)
    if not base.is_dir():
        return []
    return sorted(p.name for p in base.iterdir() if (p / "fullchain.pem").is_file())


def build_certbot_command(domain: str, email: str | None = None) -> list[str]:
    cmd = ["certbot", "--nginx", "-d", domain, "--non-interactive", "--agree-tos"]
    if email:
        cmd += ["-m", email]
    else:
        cmd.append("--register-unsafely-without-email")
    return cmd


def ensure_certbot() -> bool:
    if command_exists("certbot"):
        return True
    status_info("Installing certbot...")
    try:
        run_cmd(["apt-get", "install", "-y", *CERTBOT_PACKAGES])
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("certbot install failed: %s", err)
        return False
    return True


def issue(domain: str, email: str | None = None) -> bool:
    try:
        run_cmd(build_certbot_command(domain, email))
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("certbot issuance failed for %s: %s", domain, err)
        return False
    log(f"PASS: certbot issued certificate for {domain}")
    return True


def renew(domain: str | None = None) -> bool:
    cmd = ["certbot", "renew", "--non-interactive"]
    if domain:
        cmd += ["--cert-name", domain, "--force-renewal"]
    try:
        run_cmd(cmd)
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("certbot renew failed: %s", err)
        return False
    return True


def delete(domain: str) -> bool:
    try:
        run_cmd(["certbot", "delete", "--cert-name", domain, "--non-interactive"])
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("certbot delete failed for %s: %s", domain, err)
        return False
    return True
