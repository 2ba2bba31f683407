"""Ownership, mode and ACL repair for project directories."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from sitemgr.config import DIR_PERMS, FILE_PERMS, LARAVEL_WRITABLE_DIRS, WEB_GROUP, WEB_ROOT
from sitemgr.domains import is_laravel_project
from sitemgr.utils import command_exists, log, run_cmd, status_fail, status_pass

SETGID = 0o2000


def _chmod_tree(path: Path, dir_mode: int, file_mode: int) -> None:
    os.chmod(path, dir_mode)
    for current, dirs, files in os.walk(path):
        for name in dirs:
            target = Path(current) / name
            if not target.is_symlink():
                os.chmod(target, dir_mode)
        for name in files:
            target = Path(current) / name
            if not target.is_symlink():
                os.chmod(target, file_mode)


def _chown_tree(path: Path, user: str) -> None:
    run_cmd(["chown", "-R", f"{user}:{WEB_GROUP}", str(path)])


def _apply_acl(path: Path) -> None:
    if not command_exists("setfacl"):
        log("INFO: setfacl not available (skip ACLs)")
        return
    run_cmd(["setfacl", "-R", "-m", f"g:{WEB_GROUP}:rwX", str(path)])
    run_cmd(["setfacl", "-R", "-d", "-m", f"g:{WEB_GROUP}:rwX", str(path)])


def fix_project_permissions(path: str | Path, user: str) -> bool:
    target = Path(path)
    if not target.is_dir():
        status_fail(f"{target} is not a directory")
        return False
    try:
        _chown_tree(target, user)
        _chmod_tree(target, DIR_PERMS | SETGID, FILE_PERMS)
        _apply_acl(target)
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("Permission fix failed for %s: %s", target, err)
        status_fail(f"could not fix permissions on {target}")
        return False
    log(f"PASS: Permissions fixed for {target}")
    return True


def fix_laravel_permissions(path: str | Path, user: str) -> bool:
    base = Path(path)
    try:
        for rel in LARAVEL_WRITABLE_DIRS:
            target = base / rel
            target.mkdir(parents=True, exist_ok=True)
            _chown_tree(target, user)
            _chmod_tree(target, DIR_PERMS | SETGID, FILE_PERMS)
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("Laravel permission fix failed for %s: %s", base, err)
        status_fail(f"could not set Laravel directory permissions in {base}")
        return False
    log(f"PASS: Laravel writable dirs ready in {base}")
    return True


def fix_all_permissions(user: str) -> bool:
    root = Path(WEB_ROOT)
    if not root.is_dir():
        status_fail(f"web root {root} does not exist; run setup first")
        return False
    try:
        run_cmd(["chown", f"{user}:{WEB_GROUP}", str(root)])
        os.chmod(root, DIR_PERMS)
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("Web root permission fix failed: %s", err)
        status_fail(f"could not fix permissions on {root}")
        return False
    ok = True
    for project in sorted(p for p in root.iterdir() if p.is_dir() and not p.is_symlink()):
        if not fix_project_permissions(project, user):
            ok = False
            continue
        if is_laravel_project(project) and not fix_laravel_permissions(project, user):
            ok = False
            continue
        status_pass(f"permissions fixed: {project}")
    return ok
