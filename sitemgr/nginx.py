#!/usr/bin/env python3
"""Create/remove nginx vhost configs under sites-available/sites-enabled.

SRP: This module only manages nginx config files and nginx service ops.
Host file management lives in sitemgr.hosts.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import sys
from pathlib import Path

from sitemgr.config import NGINX_LOG_DIR, SITES_AVAILABLE, SITES_ENABLED
from sitemgr.settings import get_php_version, php_socket, version_from_socket
from sitemgr.utils import log, run_capture, run_cmd

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
HTTP_TEMPLATE = TEMPLATE_DIR / "vhost_http.conf"
SSL_TEMPLATE = TEMPLATE_DIR / "vhost_ssl.conf"
ROOT_RE = re.compile(r"^\s*root\s+([^;]+);", re.MULTILINE)
FASTCGI_RE = re.compile(r"^\s*fastcgi_pass\s+unix:([^;]+);", re.MULTILINE)
IGNORED_SITES = ("default",)


def conf_path(domain: str) -> Path:
    return Path(SITES_AVAILABLE) / domain


def link_path(domain: str) -> Path:
    return Path(SITES_ENABLED) / domain


def backup_path(domain: str) -> Path:
    return Path(SITES_AVAILABLE) / f"{domain}.bak"


def render_vhost(domain: str, root_dir: str | Path, php_version: str | None = None) -> str:
    template = HTTP_TEMPLATE.read_text()
    return template.format(
        domain=domain,
        root_dir=str(root_dir),
        php_fpm_sock=php_socket(php_version or get_php_version()),
        log_dir=NGINX_LOG_DIR,
    )


def render_ssl_vhost(
    domain: str,
    root_dir: str | Path,
    cert_file: str | Path,
    key_file: str | Path,
    php_version: str | None = None,
) -> str:
    template = SSL_TEMPLATE.read_text()
    return template.format(
        domain=domain,
        root_dir=str(root_dir),
        cert_file=str(cert_file),
        key_file=str(key_file),
        php_fpm_sock=php_socket(php_version or get_php_version()),
        log_dir=NGINX_LOG_DIR,
    )


def write_vhost(domain: str, content: str) -> Path:
    path = conf_path(domain)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    log(f"PASS: Wrote nginx config {path}")
    return path


def enable_vhost(domain: str) -> Path:
    link = link_path(domain)
    link.parent.mkdir(parents=True, exist_ok=True)
    if link.is_symlink() or link.exists():
        link.unlink()
    link.symlink_to(conf_path(domain))
    log(f"PASS: Enabled {link}")
    return link


def vhost_exists(domain: str) -> bool:
    return conf_path(domain).is_file()


def remove_vhost(domain: str) -> None:
    link = link_path(domain)
    if link.is_symlink() or link.exists():
        link.unlink()
        log(f"PASS: Removed link {link}")
    path = conf_path(domain)
    if not path.exists():
        log(f"INFO: conf not found (skip): {path}")
        return
    path.unlink()
    log(f"PASS: Removed nginx config for {domain}")


def read_document_root(domain: str) -> Path | None:
    path = conf_path(domain)
    if not path.is_file():
        return None
    match = ROOT_RE.search(path.read_text())
    if not match:
        return None
    return Path(match.group(1).strip())


def read_php_version(domain: str) -> str | None:
    """PHP version behind the vhost's fastcgi_pass socket, if any."""
    path = conf_path(domain)
    if not path.is_file():
        return None
    match = FASTCGI_RE.search(path.read_text())
    if not match:
        return None
    return version_from_socket(match.group(1).strip())


def list_sites() -> list[str]:
    base = Path(SITES_AVAILABLE)
    if not base.is_dir():
        return []
    names = []
    for item in sorted(base.iterdir()):
        if not item.is_file() or item.suffix == ".bak":
            continue
        if item.name in IGNORED_SITES:
            continue
        names.append(item.name)
    return names


def backup_vhost(domain: str) -> Path | None:
    src = conf_path(domain)
    if not src.is_file():
        return None
    dst = backup_path(domain)
    shutil.copy2(src, dst)
    log(f"PASS: Backed up {src} to {dst}")
    return dst


def restore_vhost(domain: str) -> bool:
    src = backup_path(domain)
    if not src.is_file():
        logging.error("No backup to restore for %s", domain)
        return False
    shutil.move(str(src), str(conf_path(domain)))
    log(f"PASS: Restored nginx config for {domain}")
    return True


def discard_backup(domain: str) -> None:
    path = backup_path(domain)
    if path.exists():
        path.unlink()


def test_config() -> bool:
    rc, out, err = run_capture(["nginx", "-t"])
    if rc == 0:
        log("PASS: nginx -t")
        return True
    logging.error("nginx -t exit=%s\nSTDERR: %s", rc, (err or out).strip())
    return False


def reload_nginx() -> None:
    run_cmd(["systemctl", "reload", "nginx"])


def apply() -> bool:
    if not test_config():
        return False
    try:
        reload_nginx()
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("nginx reload failed: %s", err)
        return False
    return True


USAGE = "usage: python -m sitemgr.nginx write <domain> <root> | remove <domain> | test | reload"


def main(argv: list[str]) -> int:
    if not argv:
        print(USAGE, file=sys.stderr)
        return 2
    cmd = argv[0]
    if cmd == "write":
        if len(argv) < 3:
            print("FAIL: Missing domain or root", file=sys.stderr)
            return 2
        write_vhost(argv[1], render_vhost(argv[1], argv[2]))
        enable_vhost(argv[1])
        return 0 if apply() else 1
    if cmd == "remove":
        if len(argv) < 2:
            print("FAIL: Missing domain", file=sys.stderr)
            return 2
        remove_vhost(argv[1])
        return 0 if apply() else 1
    if cmd == "test":
        return 0 if test_config() else 1
    if cmd == "reload":
        return 0 if apply() else 1
    print(USAGE, file=sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
