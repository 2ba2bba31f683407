"""Initial server provisioning and dependency checks.

setup_server runs a fixed sequence: apt update, nginx, PHP-FPM, MySQL or
MariaDB, Node.js, Composer, firewall rules, web root, saved php_version.
Installers retry a fixed number of times with a constant pause. A failed
Nginx install aborts setup; any other component that still fails asks the
operator whether to carry on without it.
"""

from __future__ import annotations

import logging
import os
import pwd
import re
import subprocess
import tempfile
from pathlib import Path
from typing import Callable

from rich.table import Table

from sitemgr.config import (
    COMPOSER_ATTEMPTS,
    COMPOSER_DIR,
    DB_INSTALL_ATTEMPTS,
    DIR_PERMS,
    INSTALL_ATTEMPTS,
    NODE_MAJOR,
    PHP_EXTENSIONS,
    PHP_VERSIONS,
    RETRY_DELAY,
    WEB_GROUP,
    WEB_ROOT,
)
from sitemgr.settings import write_config_value
from sitemgr.utils import (
    command_exists,
    console,
    current_user,
    log,
    retry,
    run_capture,
    run_cmd,
    status_fail,
    status_info,
    status_pass,
    status_warn,
)

TOOLS = ("nginx", "php", "mysqld", "node", "npm", "composer")
PATH_MARKER = "# Added by site-manager"
COMPOSER_INSTALLER_URL = "https://getcomposer.org/installer"
NODESOURCE_URL = "https://deb.nodesource.com/setup_{major}.x"

_VERSION_PATTERNS = {
    "nginx": re.compile(r"nginx/(\S+)"),
    "php": re.compile(r"^PHP (\S+)", re.MULTILINE),
    "mysqld": re.compile(r"Ver (\S+)"),
    "mariadbd": re.compile(r"Ver (\S+)"),
    "node": re.compile(r"v?(\d+\.\d+\.\d+)"),
    "npm": re.compile(r"(\d+\.\d+\.\d+)"),
    "composer": re.compile(r"Composer (?:version )?(\S+)"),
}
_VERSION_ARGS = {
    "nginx": ["-v"],
    "php": ["-v"],
    "mysqld": ["--version"],
    "mariadbd": ["--version"],
    "node": ["-v"],
    "npm": ["-v"],
    "composer": ["--version", "--no-ansi"],
}


def parse_version(tool: str, output: str) -> str | None:
    pattern = _VERSION_PATTERNS.get(tool)
    if pattern is None:
        return None
    match = pattern.search(output)
    if match:
        return match.group(1)
    return None


def tool_version(tool: str) -> str | None:
    args = [tool] + _VERSION_ARGS.get(tool, ["--version"])
    # nginx -v and mysqld --version print to stderr on some builds
    rc, out, err = run_capture(args, timeout=30)
    if rc != 0:
        return None
    return parse_version(tool, out + "\n" + err)


def _resolve_tool(tool: str) -> str | None:
    if command_exists(tool):
        return tool
    if tool == "mysqld" and command_exists("mariadbd"):
        return "mariadbd"
    return None


def check_tool(tool: str) -> tuple[bool, str | None]:
    found = _resolve_tool(tool)
    if found is None:
        return False, None
    return True, tool_version(found)


def check_dependencies() -> bool:
    table = Table(title="System Dependencies")
    table.add_column("Tool")
    table.add_column("Status")
    table.add_column("Version")
    all_found = True
    for tool in TOOLS:
        found, version = check_tool(tool)
        if found:
            table.add_row(tool, "[green]✔ installed[/green]", version or "unknown")
        else:
            table.add_row(tool, "[red]✘ missing[/red]", "-")
            all_found = False
    console.print(table)
    return all_found


# ─── Installers ───────────────────────────────────────────────────────────


def apt_install(*packages: str) -> bool:
    env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
    run_cmd(["apt-get", "install", "-y", *packages], env=env)
    return True


def apt_update() -> bool:
    run_cmd(["apt-get", "update"])
    return True


def install_nginx(sleep: Callable[[float], None] | None = None) -> bool:
    if command_exists("nginx"):
        log("INFO: nginx already installed")
        return True
    status_info("Installing Nginx...")

    def _install() -> bool:
        apt_install("nginx")
        run_cmd(["systemctl", "enable", "--now", "nginx"])
        return True

    return _retry(_install, INSTALL_ATTEMPTS, "nginx install", sleep)


def php_packages(version: str) -> list[str]:
    return [f"php{version}-{ext}" for ext in PHP_EXTENSIONS]


def install_php(version: str, sleep: Callable[[float], None] | None = None) -> bool:
    if version not in PHP_VERSIONS:
        status_fail(f"unsupported PHP version {version}")
        return False
    status_info(f"Installing PHP {version}...")

    def _install() -> bool:
        apt_install(*php_packages(version))
        run_cmd(["systemctl", "enable", "--now", f"php{version}-fpm"])
        return True

    return _retry(_install, INSTALL_ATTEMPTS, f"php{version} install", sleep)


def _set_db_root_password(password: str) -> None:
    sql = (
        "ALTER USER 'root'@'localhost' IDENTIFIED WITH mysql_native_password "
        f"BY '{_sql_quote(password)}'; FLUSH PRIVILEGES;"
    )
    if command_exists("mariadbd") and not command_exists("mysqld"):
        sql = (
            "ALTER USER 'root'@'localhost' IDENTIFIED BY "
            f"'{_sql_quote(password)}'; FLUSH PRIVILEGES;"
        )
    run_cmd(["mysql", "-e", sql])


def _sql_quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def install_database(
    root_password: str | None = None, sleep: Callable[[float], None] | None = None
) -> bool:
    if command_exists("mysqld") or command_exists("mariadbd"):
        log("INFO: database server already installed")
        return True
    status_info("Installing MySQL...")

    def _mysql() -> bool:
        apt_install("mysql-server")
        run_cmd(["systemctl", "enable", "--now", "mysql"])
        return True

    def _mariadb() -> bool:
        apt_install("mariadb-server")
        run_cmd(["systemctl", "enable", "--now", "mariadb"])
        return True

    # Half the attempts on MySQL, the rest on MariaDB
    mysql_attempts = max(1, DB_INSTALL_ATTEMPTS // 2)
    ok = _retry(_mysql, mysql_attempts, "mysql install", sleep)
    if not ok:
        status_warn("MySQL install failed; trying MariaDB")
        ok = _retry(_mariadb, DB_INSTALL_ATTEMPTS - mysql_attempts, "mariadb install", sleep)
    if not ok:
        return False
    if root_password:
        try:
            _set_db_root_password(root_password)
        except (subprocess.CalledProcessError, OSError) as err:
            logging.error("Setting database root password failed: %s", err)
            status_warn("could not set database root password; set it manually")
            return True
        status_pass("database root password set")
    return True


def install_node(sleep: Callable[[float], None] | None = None) -> bool:
    if command_exists("node"):
        log("INFO: node already installed")
        return True
    status_info("Installing Node.js and npm...")

    def _install() -> bool:
        with tempfile.NamedTemporaryFile("w", suffix=".sh", delete=False) as tmp:
            script = tmp.name
        try:
            run_cmd(["curl", "-fsSL", "-o", script, NODESOURCE_URL.format(major=NODE_MAJOR)])
            run_cmd(["bash", script])
        finally:
            Path(script).unlink(missing_ok=True)
        apt_install("nodejs")
        return True

    if not _retry(_install, INSTALL_ATTEMPTS, "node install", sleep):
        return False
    if not command_exists("npm"):
        status_info("Installing npm separately...")
        return _retry(lambda: apt_install("npm"), INSTALL_ATTEMPTS, "npm install", sleep)
    return True


def install_composer(sleep: Callable[[float], None] | None = None) -> bool:
    if command_exists("composer"):
        log("INFO: composer already installed")
        return True
    status_info("Installing Composer...")

    def _install() -> bool:
        workdir = tempfile.mkdtemp(prefix="composer-")
        setup = os.path.join(workdir, "composer-setup.php")
        try:
            run_cmd(["php", "-r", f"copy('{COMPOSER_INSTALLER_URL}', '{setup}');"])
            run_cmd(["php", setup, f"--install-dir={COMPOSER_DIR}", "--filename=composer"])
        finally:
            Path(setup).unlink(missing_ok=True)
            os.rmdir(workdir)
        return True

    return _retry(_install, COMPOSER_ATTEMPTS, "composer install", sleep)


def _retry(action: Callable[[], bool], attempts: int, label: str, sleep) -> bool:
    if sleep is None:
        return retry(action, attempts, RETRY_DELAY, label)
    return retry(action, attempts, RETRY_DELAY, label, sleep=sleep)


# ─── Shell PATH, firewall, web root ───────────────────────────────────────


def detect_shell_config(shell: str | None = None, home: str | None = None) -> Path:
    shell_name = os.path.basename(shell or os.environ.get("SHELL", ""))
    base = Path(home or os.path.expanduser("~"))
    if shell_name.startswith("bash"):
        return base / ".bashrc"
    if shell_name.startswith("zsh"):
        return base / ".zshrc"
    if shell_name.startswith("fish"):
        return base / ".config" / "fish" / "config.fish"
    return base / ".profile"


def path_export_line(rc_file: Path, directory: str) -> str:
    if rc_file.name == "config.fish":
        return f"fish_add_path {directory}"
    return f'export PATH="$PATH:{directory}"'


def ensure_path_entry(rc_file: Path, directory: str = COMPOSER_DIR) -> bool:
    """Append a marked PATH export once; True when the file was changed."""
    line = path_export_line(rc_file, directory)
    existing = rc_file.read_text() if rc_file.exists() else ""
    if PATH_MARKER in existing or line in existing:
        return False
    rc_file.parent.mkdir(parents=True, exist_ok=True)
    with open(rc_file, "a", encoding="utf-8") as fh:
        if existing and not existing.endswith("\n"):
            fh.write("\n")
        fh.write(f"\n{PATH_MARKER}\n{line}\n")
    log(f"PASS: PATH entry added to {rc_file}")
    return True


def _home_of(user: str) -> str | None:
    try:
        return pwd.getpwnam(user).pw_dir
    except KeyError:
        return None


def composer_on_path(path_env: str | None = None) -> bool:
    entries = (path_env if path_env is not None else os.environ.get("PATH", "")).split(os.pathsep)
    return COMPOSER_DIR in entries


def configure_firewall() -> bool:
    if not command_exists("ufw"):
        log("INFO: ufw not installed (skip firewall)")
        return True
    try:
        run_cmd(["ufw", "allow", "OpenSSH"])
        run_cmd(["ufw", "allow", "Nginx Full"])
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("ufw configuration failed: %s", err)
        status_warn("could not configure ufw rules")
        return False
    status_pass("firewall allows OpenSSH and Nginx Full")
    return True


def setup_web_root(user: str) -> bool:
    root = Path(WEB_ROOT)
    try:
        root.mkdir(parents=True, exist_ok=True)
        run_cmd(["chown", "-R", f"{user}:{WEB_GROUP}", str(root)])
        os.chmod(root, DIR_PERMS)
        if user != "root":
            run_cmd(["usermod", "-aG", WEB_GROUP, user])
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("Web root setup failed: %s", err)
        status_fail(f"could not configure {root}")
        return False
    status_pass(f"{root} owned by {user}:{WEB_GROUP}")
    return True


# ─── Orchestration ─────────────────────────────────────────────────────────


def setup_server(
    php_version: str,
    db_root_password: str | None = None,
    user: str | None = None,
    confirm_continue: Callable[[str], bool] | None = None,
    rc_file: Path | None = None,
    sleep: Callable[[float], None] | None = None,
) -> bool:
    """Provision nginx, PHP, database, Node.js and Composer in a fixed order."""
    owner = user or current_user()
    if php_version not in PHP_VERSIONS:
        status_fail(f"unsupported PHP version {php_version}")
        return False

    try:
        apt_update()
    except (subprocess.CalledProcessError, OSError) as err:
        logging.error("apt-get update failed: %s", err)
        status_fail("apt-get update failed")
        return False

    steps: list[tuple[str, Callable[[], bool], bool]] = [
        ("Nginx", lambda: install_nginx(sleep), True),
        (f"PHP {php_version}", lambda: install_php(php_version, sleep), False),
        ("Database", lambda: install_database(db_root_password, sleep), False),
        ("Node.js", lambda: install_node(sleep), False),
        ("Composer", lambda: install_composer(sleep), False),
    ]
    for label, step, required in steps:
        if step():
            status_pass(f"{label} ready")
            continue
        if required:
            status_fail(f"{label} installation failed; aborting setup")
            return False
        status_fail(f"{label} installation failed after retries")
        if confirm_continue is None or not confirm_continue(label):
            return False
        status_warn(f"continuing without {label}")

    if command_exists("composer") and not composer_on_path():
        target = rc_file or detect_shell_config(home=_home_of(owner))
        try:
            if ensure_path_entry(target):
                status_info(f"{COMPOSER_DIR} added to PATH in {target}; restart your shell")
        except OSError as err:
            logging.error("Could not update %s: %s", target, err)
            status_warn(f"add {COMPOSER_DIR} to your PATH manually")

    configure_firewall()
    if not setup_web_root(owner):
        return False
    try:
        write_config_value("php_version", php_version)
    except OSError as err:
        status_fail(f"could not save php_version: {err}")
        return False
    status_pass("server setup complete")
    status_info("log out and back in for group changes to take effect")
    return True
