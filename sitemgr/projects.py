"""Create, delete, move and clone per-domain web projects."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path

from sitemgr import hosts, nginx
from sitemgr.config import DIR_PERMS, FILE_PERMS, LOCALHOST_IP, WEB_GROUP, WEB_ROOT
from sitemgr.domains import (
    is_laravel_project,
    is_valid_domain,
    project_name_from_repo,
    project_root,
)
from sitemgr.permissions import fix_laravel_permissions
from sitemgr.certs.selfsigned import remove_selfsigned_files
from sitemgr.utils import (
    log,
    run_as_user,
    run_cmd,
    status_fail,
    status_info,
    status_pass,
    status_warn,
)

INDEX_TEMPLATE = Path(__file__).resolve().parent / "templates" / "welcome_index.php"
SQLITE_MARKER = "DB_CONNECTION=sqlite"
LARAVEL_PERMS_HINT = "Laravel storage dirs may not be writable; run fix-permissions"


def _in_web_root(path: Path) -> bool:
    try:
        resolved = path.resolve()
        root = Path(WEB_ROOT).resolve()
    except OSError:
        return False
    return resolved != root and resolved.is_relative_to(root)


def _prepare_dir(path: Path, user: str) -> None:
    path.mkdir(parents=True, exist_ok=True)
    run_cmd(["chown", "-R", f"{user}:{WEB_GROUP}", str(path)])
    os.chmod(path, DIR_PERMS)


def setup_nginx(domain: str, document_root: str | Path, php_version: str | None = None) -> bool:
    if not str(document_root).strip():
        status_fail("document root is empty")
        return False
    try:
        nginx.write_vhost(domain, nginx.render_vhost(domain, document_root, php_version))
        nginx.enable_vhost(domain)
    except OSError as err:
        status_fail(f"could not write nginx config for {domain}: {err}")
        return False
    status_pass(f"nginx config {nginx.conf_path(domain)}")
    if not hosts.add_host(LOCALHOST_IP, domain):
        return False
    if not nginx.apply():
        status_fail("nginx config test failed; see log")
        return False
    status_pass("nginx reloaded")
    return True


def _write_welcome_index(path: Path, domain: str, user: str) -> None:
    for name in ("index.php", "index.html", "index.htm"):
        if (path / name).exists():
            log(f"INFO: {path / name} exists (skip welcome page)")
            return
    index_file = path / "index.php"
    index_file.write_text(INDEX_TEMPLATE.read_text().format(domain=domain))
    run_cmd(["chown", f"{user}:{WEB_GROUP}", str(index_file)])
    os.chmod(index_file, FILE_PERMS)


def _configure_sqlite(path: Path, user: str) -> None:
    env_file = path / ".env"
    if not env_file.is_file():
        return
    for line in env_file.read_text().splitlines():
        if line.strip().lstrip("#").strip().startswith(SQLITE_MARKER):
            break
    else:
        return
    db_file = path / "database" / "database.sqlite"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    db_file.touch()
    run_cmd(["chown", f"{user}:{WEB_GROUP}", str(db_file)])
    os.chmod(db_file, FILE_PERMS)
    status_info("SQLite database configured")


def install_laravel(path: Path, user: str) -> bool:
    if any(path.iterdir()):
        log(f"INFO: {path} not empty (skip laravel install)")
    else:
        status_info("Installing Laravel project...")
        cmd = ["composer", "create-project", "--prefer-dist", "laravel/laravel", "."]
        if not run_as_user(user, cmd, cwd=str(path)):
            status_fail("Laravel installation failed")
            return False
    if not fix_laravel_permissions(path, user):
        return False
    try:
        _configure_sqlite(path, user)
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("SQLite setup failed in %s: %s", path, err)
        status_warn("could not create database/database.sqlite")
    return True


def create_site(domain: str, path: str, laravel: bool, user: str) -> bool:
    if not is_valid_domain(domain):
        status_fail(f"invalid domain name: {domain!r}")
        return False
    if nginx.vhost_exists(domain):
        status_fail(f"nginx config already exists for {domain}")
        return False
    rel = path.strip().strip("/") or domain
    full_path = Path(WEB_ROOT) / rel
    if not _in_web_root(full_path):
        status_fail(f"project path must stay inside {WEB_ROOT}")
        return False
    try:
        _prepare_dir(full_path, user)
    except (subprocess.CalledProcessError, OSError) as err:
        status_fail(f"could not prepare {full_path}: {err}")
        return False

    if laravel:
        if not install_laravel(full_path, user):
            return False
        document_root = full_path / "public"
    else:
        try:
            _write_welcome_index(full_path, domain, user)
        except (subprocess.CalledProcessError, OSError) as err:
            status_fail(f"could not write index.php: {err}")
            return False
        document_root = full_path

    log(f"document_root={document_root}")
    if not setup_nginx(domain, document_root):
        return False
    status_pass(f"project created: http://{domain}")
    return True


def delete_site(domain: str, delete_files: bool) -> bool:
    if not nginx.vhost_exists(domain):
        status_fail(f"no configuration found for {domain}")
        return False
    document_root = nginx.read_document_root(domain)
    nginx.remove_vhost(domain)
    nginx.discard_backup(domain)
    status_pass(f"nginx config removed for {domain}")
    if not hosts.remove_host(domain):
        return False
    remove_selfsigned_files(domain)

    if delete_files and document_root is not None:
        root = project_root(document_root)
        if not root.exists():
            log(f"INFO: {root} already gone")
        elif not _in_web_root(root):
            status_warn(f"refusing to delete {root}: outside {WEB_ROOT}")
        else:
            try:
                shutil.rmtree(root)
            except OSError as err:
                status_fail(f"could not remove {root}: {err}")
                return False
            status_pass(f"project files removed: {root}")

    if not nginx.apply():
        status_fail("nginx reload failed; see log")
        return False
    status_pass(f"project {domain} removed")
    return True


def move_project(source: str, domain: str, user: str) -> bool:
    src = Path(source).expanduser()
    try:
        src = src.resolve(strict=True)
    except OSError:
        status_fail(f"source directory {source!r} does not exist")
        return False
    if not src.is_dir():
        status_fail(f"source {src} is not a directory")
        return False
    if not is_valid_domain(domain):
        status_fail(f"invalid domain name: {domain!r}")
        return False
    if nginx.vhost_exists(domain):
        status_fail(f"nginx config already exists for {domain}")
        return False
    target = Path(WEB_ROOT) / src.name
    log(f"move {src} -> {target}")
    try:
        if src != target.resolve():
            target.mkdir(parents=True, exist_ok=True)
            run_cmd(["rsync", "-a", f"{src}/", f"{target}/"])
        run_cmd(["chown", "-R", f"{user}:{WEB_GROUP}", str(target)])
    except (subprocess.CalledProcessError, OSError) as err:
        status_fail(f"could not move project: {err}")
        return False

    document_root = target
    if is_laravel_project(target):
        if not fix_laravel_permissions(target, user):
            status_warn(LARAVEL_PERMS_HINT)
        document_root = target / "public"
    if not setup_nginx(domain, document_root):
        return False
    status_pass(f"project moved to {target}")
    return True


def _bootstrap_laravel_clone(target: Path, user: str) -> None:
    if not run_as_user(user, ["composer", "install", "--no-interaction"], cwd=str(target)):
        status_warn("composer install failed; run it manually")
        return
    example = target / ".env.example"
    env_file = target / ".env"
    if example.is_file() and not env_file.exists():
        shutil.copyfile(example, env_file)
        run_cmd(["chown", f"{user}:{WEB_GROUP}", str(env_file)])
        if not run_as_user(user, ["php", "artisan", "key:generate"], cwd=str(target)):
            status_warn("php artisan key:generate failed")
    if not fix_laravel_permissions(target, user):
        status_warn(LARAVEL_PERMS_HINT)
    _configure_sqlite(target, user)


def clone_project(repo_url: str, domain: str, user: str) -> bool:
    if not repo_url.strip():
        status_fail("repository URL is empty")
        return False
    if not is_valid_domain(domain):
        status_fail(f"invalid domain name: {domain!r}")
        return False
    if nginx.vhost_exists(domain):
        status_fail(f"nginx config already exists for {domain}")
        return False
    name = project_name_from_repo(repo_url)
    if not name:
        status_fail(f"cannot derive project name from {repo_url!r}")
        return False
    target = Path(WEB_ROOT) / name
    if target.exists() and any(target.iterdir()):
        status_fail(f"target {target} exists and is not empty")
        return False
    try:
        _prepare_dir(target, user)
    except (subprocess.CalledProcessError, OSError) as err:
        status_fail(f"could not prepare {target}: {err}")
        return False
    if not run_as_user(user, ["git", "clone", repo_url, str(target)]):
        status_fail(f"git clone failed for {repo_url}")
        return False
    status_pass(f"cloned {repo_url}")

    document_root = target
    if is_laravel_project(target):
        try:
            _bootstrap_laravel_clone(target, user)
        except (subprocess.CalledProcessError, OSError) as err:
            logging.error("Laravel bootstrap failed: %s", err)
            status_warn("Laravel bootstrap incomplete; see log")
        document_root = target / "public"
    if not setup_nginx(domain, document_root):
        return False
    status_pass(f"project cloned to {target}")
    return True
