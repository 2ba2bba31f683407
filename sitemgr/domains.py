"""Domain, project-path and repository-name helpers."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from sitemgr.config import LOCAL_TLDS

LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
DOMAIN_RE = re.compile(rf"^(?:{LABEL}\.)+[A-Za-z][A-Za-z0-9-]{{0,62}}$")


def is_valid_domain(name: str) -> bool:
    if not name or len(name) > 253:
        return False
    return DOMAIN_RE.fullmatch(name) is not None


def is_local_domain(name: str) -> bool:
    return name.lower().endswith(LOCAL_TLDS)


def project_root(document_root: str | Path) -> Path:
    root = Path(document_root)
    if root.name == "public":
        return root.parent
    return root


def is_laravel_project(path: str | Path) -> bool:
    base = Path(path)
    if (base / "artisan").is_file():
        return True
    composer = base / "composer.json"
    if not composer.is_file():
        return False
    try:
        data = json.loads(composer.read_text(encoding="utf-8"))
    except (OSError, ValueError) as err:
        logging.debug("Unreadable %s: %s", composer, err)
        return False
    require = data.get("require") if isinstance(data, dict) else None
    return isinstance(require, dict) and "laravel/framework" in require


def project_name_from_repo(url: str) -> str:
    tail = url.rstrip("/").rsplit("/", 1)[-1]
    tail = tail.rsplit(":", 1)[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    return tail
