"""Issue, renew and remove certificates and keep the vhost in step."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from rich.table import Table

from sitemgr import nginx
from sitemgr.certs import letsencrypt, selfsigned, status
from sitemgr.domains import is_local_domain
from sitemgr.utils import (
    command_exists,
    console,
    status_fail,
    status_info,
    status_pass,
    status_warn,
)

STATE_STYLES = {
    status.VALID: "green",
    status.EXPIRING: "yellow",
    status.EXPIRED: "red",
    status.MISSING: "red",
    status.UNREADABLE: "red",
}


def _reload() -> bool:
    try:
        nginx.reload_nginx()
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("nginx reload failed: %s", err)
        status_fail("nginx reload failed; see log")
        return False
    return True


def _swap_vhost(domain: str, content: str) -> bool:
    """Replace the vhost, keeping the previous version when nginx -t fails."""
    nginx.backup_vhost(domain)
    nginx.write_vhost(domain, content)
    if nginx.test_config():
        nginx.discard_backup(domain)
        return True
    nginx.restore_vhost(domain)
    status_fail(f"nginx rejected the new config for {domain}; previous config restored")
    return False


def _require_vhost(domain: str) -> Path | None:
    if not nginx.vhost_exists(domain):
        status_fail(f"no nginx config for {domain}; create the project first")
        return None
    root = nginx.read_document_root(domain)
    if root is None:
        status_fail(f"no root directive in {nginx.conf_path(domain)}")
    return root


def setup_selfsigned(domain: str) -> bool:
    root = _require_vhost(domain)
    if root is None:
        return False
    status_info(f"Generating self-signed certificate for {domain}...")
    if not selfsigned.generate_selfsigned(domain):
        status_fail(f"openssl failed for {domain}; see log")
        return False
    content = nginx.render_ssl_vhost(
        domain,
        root,
        selfsigned.cert_file(domain),
        selfsigned.key_file(domain),
        nginx.read_php_version(domain),
    )
    try:
        if not _swap_vhost(domain, content):
            return False
    except OSError as err:
        status_fail(f"could not update nginx config: {err}")
        return False
    if not _reload():
        return False
    status_pass(f"self-signed SSL enabled: https://{domain}")
    status_warn("browsers will warn until the certificate is trusted locally")
    return True


def setup_letsencrypt(domain: str, email: str | None = None) -> bool:
    if _require_vhost(domain) is None:
        return False
    if not letsencrypt.ensure_certbot():
        status_fail("certbot is not available")
        return False
    nginx.backup_vhost(domain)
    if not letsencrypt.issue(domain, email):
        nginx.restore_vhost(domain)
        status_fail(f"certbot failed for {domain}; previous config restored")
        return False
    nginx.discard_backup(domain)
    if not _reload():
        return False
    status_pass(f"SSL certificate installed for {domain}")
    return True


def setup_ssl(domain: str, email: str | None = None) -> bool:
    if is_local_domain(domain):
        return setup_selfsigned(domain)
    return setup_letsencrypt(domain, email)


def _renew_domain(domain: str) -> bool:
    if letsencrypt.has_letsencrypt(domain):
        return letsencrypt.renew(domain)
    if selfsigned.has_selfsigned(domain):
        return selfsigned.generate_selfsigned(domain)
    status_fail(f"no certificate found for {domain}")
    return False


def update_ssl(domain: str | None = None) -> bool:
    if domain:
        if not _renew_domain(domain):
            status_fail(f"certificate renewal failed for {domain}")
            return False
        if not nginx.apply():
            status_fail("nginx config test failed; see log")
            return False
        status_pass(f"certificate renewed for {domain}")
        return True

    ok = True
    if command_exists("certbot"):
        if letsencrypt.renew():
            status_pass("certbot renew complete")
        else:
            status_fail("certbot renew failed; see log")
            ok = False
    for item in status.collect():
        if item.kind != status.SELF_SIGNED or item.state == status.VALID:
            continue
        if selfsigned.generate_selfsigned(item.domain):
            status_pass(f"self-signed certificate regenerated for {item.domain}")
        else:
            status_fail(f"could not regenerate certificate for {item.domain}")
            ok = False
    if not nginx.apply():
        status_fail("nginx config test failed; see log")
        return False
    return ok


def remove_ssl(domain: str) -> bool:
    kind, _ = status.locate(domain)
    if kind is None:
        status_fail(f"no certificate found for {domain}")
        return False
    if nginx.vhost_exists(domain):
        root = nginx.read_document_root(domain)
        if root is None:
            status_fail(f"no root directive in {nginx.conf_path(domain)}")
            return False
        content = nginx.render_vhost(domain, root, nginx.read_php_version(domain))
        try:
            if not _swap_vhost(domain, content):
                return False
        except OSError as err:
            status_fail(f"could not update nginx config: {err}")
            return False
    if kind == status.LETSENCRYPT:
        if not letsencrypt.delete(domain):
            status_fail(f"certbot delete failed for {domain}")
            return False
    else:
        selfsigned.remove_selfsigned_files(domain)
    if nginx.vhost_exists(domain) and not _reload():
        return False
    status_pass(f"SSL removed for {domain}")
    return True


def check_ssl_status(domain: str | None = None) -> bool:
    results = status.collect(domain)
    if not results:
        status_warn("no SSL certificates found")
        return True
    table = Table(title="SSL Certificates")
    table.add_column("Domain")
    table.add_column("Type")
    table.add_column("Expires")
    table.add_column("Days left", justify="right")
    table.add_column("Status")
    for item in results:
        style = STATE_STYLES.get(item.state, "white")
        table.add_row(
            item.domain,
            item.kind or "-",
            item.expires.strftime("%Y-%m-%d") if item.expires else "-",
            str(item.days_left) if item.days_left is not None else "-",
            f"[{style}]{item.state}[/{style}]",
        )
    console.print(table)
    return all(item.state in (status.VALID, status.EXPIRING) for item in results)
