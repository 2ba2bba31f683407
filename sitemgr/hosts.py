#!/usr/bin/env python3
"""Manage site-manager entries in /etc/hosts safely and atomically.

Only lines tagged with "# site-manager" are managed. Other lines and
comments are preserved intact.
"""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path
from typing import List, Tuple

from sitemgr.config import HOSTS_FILE, LOCALHOST_IP
from sitemgr.utils import log, status_fail

TAG = "# site-manager"


def _read_hosts() -> Tuple[List[str], int, int, int]:
    path = Path(HOSTS_FILE)
    if not path.exists():
        return [], 0o644, os.getuid(), os.getgid()
    data = path.read_text()
    st = path.stat()
    lines = data.splitlines(keepends=True)
    return lines, st.st_mode, st.st_uid, st.st_gid


def _write_hosts_atomic(lines: List[str], mode: int, uid: int, gid: int) -> bool:
    path = Path(HOSTS_FILE)
    try:
        with tempfile.NamedTemporaryFile(
            mode="w", delete=False, dir=str(path.parent)
        ) as tmp:
            tmp.writelines(lines)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_path = tmp.name
        os.chmod(tmp_path, mode)
        if os.geteuid() == 0:
            os.chown(tmp_path, uid, gid)
        os.replace(tmp_path, str(path))
        return True
    except OSError as err:
        status_fail(f"could not write hosts file: {err}")
        return False


def _is_managed_for(line: str, domain: str) -> bool:
    if TAG not in line:
        return False
    names = line.split("#", 1)[0].split()[1:]
    return domain in names


def has_host(domain: str) -> bool:
    lines, _, _, _ = _read_hosts()
    for line in lines:
        names = line.split("#", 1)[0].split()[1:]
        if domain in names:
            return True
    return False


def add_host(ip: str, domain: str) -> bool:
    lines, mode, uid, gid = _read_hosts()
    desired = f"{ip} {domain} {TAG}\n"

    kept = [line for line in lines if not _is_managed_for(line, domain)]
    if desired in lines and len(kept) == len(lines) - 1:
        return True
    for line in kept:
        if domain in line.split("#", 1)[0].split()[1:]:
            log(f"INFO: {domain} already mapped by an unmanaged hosts line (skip)")
            return True

    if kept and not kept[-1].endswith("\n"):
        kept[-1] += "\n"
    kept.append(desired)
    if not _write_hosts_atomic(kept, mode, uid, gid):
        return False
    log(f"PASS: Added {domain} to hosts file")
    return True


def remove_host(domain: str) -> bool:
    lines, mode, uid, gid = _read_hosts()
    kept = [line for line in lines if not _is_managed_for(line, domain)]
    if len(kept) == len(lines):
        return True
    if not _write_hosts_atomic(kept, mode, uid, gid):
        return False
    log(f"PASS: Removed {domain} from hosts file")
    return True


def main(argv: list[str]) -> int:
    if not argv:
        print("FAIL: Missing domain", file=sys.stderr)
        return 1
    domain = argv[0]
    if "--remove" in argv:
        return 0 if remove_host(domain) else 1
    return 0 if add_host(LOCALHOST_IP, domain) else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
