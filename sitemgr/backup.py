"""Project/database backup into .tar.gz archives and restore from .tar.gz/.zip."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tarfile
import tempfile
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from sitemgr.config import BACKUP_DIR, WEB_ROOT
from sitemgr.utils import log, status_fail, status_info, status_pass, status_warn

DUMP_NAME = "db_dump.sql"
# Written into every <name>/ wrapper so restore can tell it from a project dir
BACKUP_MARKER = ".site-manager-backup"
ARCHIVE_SUFFIXES = (".tar.gz", ".tgz", ".zip")


@dataclass
class DbCredentials:
    name: str
    user: str
    password: str = ""
    host: str = "localhost"

    def env(self) -> dict:
        env = os.environ.copy()
        if self.password:
            env["MYSQL_PWD"] = self.password
        return env


def default_backup_name(domain: str, now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M")
    return f"{domain}_{stamp}"


def dump_database(db: DbCredentials, dest: Path) -> None:
    cmd = ["mysqldump", "-h", db.host, "-u", db.user, db.name]
    with open(dest, "w", encoding="utf-8") as out:
        subprocess.run(cmd, stdout=out, check=True, text=True, env=db.env())
    log(f"PASS: mysqldump {db.name} -> {dest}")


def import_database(db: DbCredentials, dump: Path) -> None:
    cmd = ["mysql", "-h", db.host, "-u", db.user, db.name]
    with open(dump, "r", encoding="utf-8") as src:
        subprocess.run(cmd, stdin=src, check=True, text=True, env=db.env())
    log(f"PASS: mysql import {dump} -> {db.name}")


def backup_site(
    domain: str,
    project_dir: str | Path | None,
    dest_dir: str | Path | None = None,
    name: str | None = None,
    include_code: bool = True,
    include_db: bool = False,
    db: DbCredentials | None = None,
) -> Path | None:
    """Write <dest>/<name>.tar.gz holding <name>/<project> and/or <name>/db_dump.sql."""
    if not include_code and not include_db:
        status_fail("nothing to back up: choose code, database or both")
        return None
    if include_db and db is None:
        status_fail("database backup requested without credentials")
        return None
    project = Path(project_dir) if project_dir else None
    if include_code and (project is None or not project.is_dir()):
        status_fail(f"project directory {project_dir} does not exist")
        return None

    dest = Path(dest_dir or BACKUP_DIR)
    name = (name or "").strip() or default_backup_name(domain)
    archive = dest / f"{name}.tar.gz"
    try:
        dest.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        status_fail(f"could not create backup directory {dest}: {err}")
        return None

    try:
        staging = Path(tempfile.mkdtemp(prefix=f".{name}_", dir=str(dest)))
    except OSError as err:
        status_fail(f"could not stage backup in {dest}: {err}")
        return None
    content = staging / name
    try:
        content.mkdir()
        (content / BACKUP_MARKER).write_text(f"domain={domain}\n")
        if include_code:
            status_info(f"Copying {project}...")
            shutil.copytree(project, content / project.name, symlinks=True)
        if include_db:
            status_info(f"Dumping database {db.name}...")
            dump_database(db, content / DUMP_NAME)
        with tarfile.open(archive, "w:gz") as tar:
            tar.add(str(content), arcname=name)
    except (subprocess.CalledProcessError, OSError, shutil.Error) as err:
        logging.error("Backup of %s failed: %s", domain, err)
        status_fail(f"backup failed: {err}")
        if archive.exists():
            archive.unlink()
        return None
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    status_pass(f"backup created: {archive.resolve()}")
    return archive


def resolve_archive(path: str) -> Path:
    candidate = Path(path).expanduser()
    if "/" not in path:
        candidate = Path(BACKUP_DIR) / path
    return candidate


def _safe_member(base: Path, name: str) -> bool:
    target = (base / name).resolve()
    return target == base or target.is_relative_to(base)


def extract_archive(archive: Path, dest: Path) -> None:
    base = dest.resolve()
    if archive.name.endswith(".zip"):
        with zipfile.ZipFile(archive) as zf:
            for member in zf.namelist():
                if not _safe_member(base, member):
                    raise ValueError(f"unsafe path in archive: {member}")
            zf.extractall(base)
        return
    with tarfile.open(archive, "r:gz") as tar:
        members = []
        for member in tar.getmembers():
            if not _safe_member(base, member.name):
                raise ValueError(f"unsafe path in archive: {member.name}")
            if member.issym() or member.islnk():
                link_target = os.path.join(os.path.dirname(member.name), member.linkname)
                if os.path.isabs(member.linkname) or not _safe_member(base, link_target):
                    status_warn(f"skipping link {member.name} -> {member.linkname}")
                    continue
            members.append(member)
        if hasattr(tarfile, "data_filter"):
            tar.extractall(base, members=members, filter="data")
        else:
            tar.extractall(base, members=members)


def _content_root(extracted: Path) -> Path:
    """Descend into the single <name>/ wrapper written by backup_site."""
    entries = list(extracted.iterdir())
    if len(entries) != 1 or not entries[0].is_dir():
        return extracted
    wrapper = entries[0]
    if (wrapper / BACKUP_MARKER).is_file():
        return wrapper
    return extracted


def restore_site(
    archive_path: str,
    db: DbCredentials | None = None,
    target_root: str | Path | None = None,
) -> bool:
    archive = resolve_archive(archive_path)
    if not archive.name.endswith(ARCHIVE_SUFFIXES):
        status_fail("unsupported format - use .tar.gz or .zip")
        return False
    if not archive.is_file():
        status_fail(f"backup {archive} not found")
        return False
    root = Path(target_root or WEB_ROOT)
    status_info(f"Restoring from {archive}")

    work = Path(tempfile.mkdtemp(prefix="restore_"))
    try:
        try:
            extract_archive(archive, work)
        except (OSError, ValueError, tarfile.TarError, zipfile.BadZipFile) as err:
            status_fail(f"could not extract {archive}: {err}")
            return False
        content = _content_root(work)
        dump = content / DUMP_NAME
        restored = 0
        for item in sorted(content.iterdir()):
            if item == dump or not item.is_dir():
                continue
            target = root / item.name
            if target.exists():
                status_fail(f"{target} already exists; remove or rename it first")
                return False
            root.mkdir(parents=True, exist_ok=True)
            shutil.move(str(item), str(target))
            status_pass(f"project restored to {target}")
            restored += 1

        if dump.is_file():
            if db is None:
                status_warn(f"archive contains {DUMP_NAME}; no database given (skip import)")
            else:
                try:
                    import_database(db, dump)
                except (subprocess.CalledProcessError, OSError) as err:
                    logging.error("Database import failed: %s", err)
                    status_fail(f"database import into {db.name} failed")
                    return False
                status_pass(f"database {db.name} restored")
        elif restored == 0:
            status_fail("archive contained no project or database dump")
            return False
    finally:
        shutil.rmtree(work, ignore_errors=True)

    status_pass("restore completed")
    return True
