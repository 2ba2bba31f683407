"""Persistent key=value settings and PHP version resolution."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from sitemgr.config import CONFIG_FILE, DEFAULT_PHP_VERSION, PHP_RUN_DIR, PHP_SOCKET, PHP_VERSIONS
from sitemgr.utils import log, status_fail, status_pass, status_warn

SOCKET_RE = re.compile(r"php(\d+\.\d+)-fpm\.sock$")
VERSION_RE = re.compile(r"^\d+\.\d+$")


def read_config() -> dict[str, str]:
    path = Path(CONFIG_FILE)
    if not path.exists():
        return {}
    values: dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    return values


def write_config_value(key: str, value: str) -> None:
    """Set key=value, keeping other lines and comments in place."""
    path = Path(CONFIG_FILE)
    lines: list[str] = []
    if path.exists():
        lines = path.read_text(encoding="utf-8").splitlines()
    replaced = False
    out: list[str] = []
    for line in lines:
        stripped = line.strip()
        if not stripped.startswith("#") and "=" in stripped:
            if stripped.split("=", 1)[0].strip() == key:
                if not replaced:
                    out.append(f"{key}={value}")
                    replaced = True
                continue
        out.append(line)
    if not replaced:
        out.append(f"{key}={value}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(out) + "\n", encoding="utf-8")
    log(f"PASS: {CONFIG_FILE} {key}={value}")


def version_from_socket(name: str) -> str | None:
    match = SOCKET_RE.search(name)
    if match:
        return match.group(1)
    return None


def detect_php_version() -> str:
    sockets = sorted(Path(PHP_RUN_DIR).glob("php*-fpm.sock"))
    for sock in sockets:
        version = version_from_socket(sock.name)
        if version:
            return version
    return DEFAULT_PHP_VERSION


def get_php_version() -> str:
    try:
        configured = read_config().get("php_version", "")
    except OSError as err:
        logging.error("Could not read %s: %s", CONFIG_FILE, err)
        configured = ""
    if VERSION_RE.match(configured):
        return configured
    return detect_php_version()


def php_socket(version: str) -> str:
    return PHP_SOCKET.format(version=version)


def configure(version: str) -> bool:
    if version not in PHP_VERSIONS:
        status_fail(f"unsupported PHP version {version} (choose {', '.join(PHP_VERSIONS)})")
        return False
    if not Path(php_socket(version)).exists():
        status_warn(f"PHP-FPM socket for {version} not found; is php{version}-fpm installed?")
    try:
        write_config_value("php_version", version)
    except OSError as err:
        status_fail(f"could not write {CONFIG_FILE}: {err}")
        return False
    status_pass(f"default PHP version set to {version}")
    return True
