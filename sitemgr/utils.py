"""Utility helpers shared by every site-manager module.

- init_logging: configure quiet console + rotating file logging with run-id.
- status_pass/status_fail/status_warn/status_info: coloured console lines.
- run_cmd/run_capture: thin wrappers over subprocess.run.
- run_as_user: run a command as the invoking (non-root) user.
- retry: fixed-count attempt loop with a constant pause.
- log: debug-level logger for normal progress lines (file-oriented).
"""

from __future__ import annotations

import getpass
import logging
import os
import shutil
import subprocess
import tempfile
import time
import uuid
from logging.handlers import RotatingFileHandler
from typing import Callable, Sequence

from rich.console import Console
from rich.markup import escape

from sitemgr.config import LOG_DIR


console = Console(highlight=False)

_RUN_ID = ""
RID_ENV = "SITE_MANAGER_RID"


def _gen_run_id() -> str:
    return uuid.uuid4().hex[:8]


def _log_dir() -> str:
    try:
        os.makedirs(LOG_DIR, exist_ok=True)
        if os.access(LOG_DIR, os.W_OK):
            return LOG_DIR
    except OSError:
        pass
    return tempfile.gettempdir()


def init_logging(run_id: str | None = None) -> str:
    """Initialize logging with a quiet console and a rotating file handler.

    - Console: CRITICAL only; user-facing output goes through status_*.
    - File: DEBUG+, written to <LOG_DIR>/site-manager-<rid>.log
    Returns the run-id used.
    """
    global _RUN_ID
    if _RUN_ID:
        return _RUN_ID

    rid = run_id or os.environ.get(RID_ENV) or _gen_run_id()
    _RUN_ID = rid

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    logfile = os.path.join(_log_dir(), f"site-manager-{rid}.log")

    for h in list(root.handlers):
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
            h.setLevel(logging.CRITICAL)

    has_file = any(
        isinstance(h, RotatingFileHandler)
        and getattr(h, "baseFilename", "").endswith(os.path.basename(logfile))
        for h in root.handlers
    )
    if not has_file:
        try:
            fh = RotatingFileHandler(logfile, maxBytes=5 * 1024 * 1024, backupCount=3)
        except OSError:
            fh = None
        if fh is not None:
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(
                logging.Formatter(
                    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                    datefmt="%Y-%m-%dT%H:%M:%S",
                )
            )
            root.addHandler(fh)

    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        ch = logging.StreamHandler()
        ch.setLevel(logging.CRITICAL)
        ch.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        root.addHandler(ch)

    logging.debug("Logging initialized. run_id=%s file=%s", rid, logfile)
    os.environ[RID_ENV] = rid
    return rid


def _rid() -> str:
    return _RUN_ID or os.environ.get(RID_ENV, "--------")


def status_pass(msg: str) -> None:
    console.print(f"[green]✔ {escape(msg)}[/green] [dim]\\[{_rid()}][/dim]")
    logging.info("PASS: %s", msg)


def status_fail(msg: str) -> None:
    console.print(f"[red]✘ {escape(msg)}[/red] [dim]\\[{_rid()}][/dim]")
    logging.error("FAIL: %s", msg)


def status_warn(msg: str) -> None:
    console.print(f"[yellow]! {escape(msg)}[/yellow]")
    logging.warning(msg)


def status_info(msg: str) -> None:
    console.print(f"[blue]›[/blue] {escape(msg)}")
    logging.info(msg)


def log(msg: str) -> None:
    # File-oriented normal progress; stays out of console noise.
    logging.debug(msg)


def run_cmd(args: Sequence[str], cwd: str | None = None, env: dict | None = None) -> None:
    log(f"RUN: {' '.join(args)}")
    subprocess.run(list(args), check=True, text=True, cwd=cwd, env=env)


def run_capture(args: Sequence[str], timeout: int | None = None) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr); never raises."""
    try:
        proc = subprocess.run(
            list(args), text=True, capture_output=True, timeout=timeout
        )
    except (OSError, subprocess.TimeoutExpired) as err:
        logging.debug("capture %s failed: %s", " ".join(args), err)
        return 127, "", str(err)
    return proc.returncode, (proc.stdout or ""), (proc.stderr or "")


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def is_root() -> bool:
    return os.geteuid() == 0


def current_user() -> str:
    """The human behind sudo, or the effective user."""
    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user:
        return sudo_user
    return getpass.getuser()


def user_argv(user: str, args: Sequence[str]) -> list[str]:
    if not is_root() or user in ("", "root"):
        return list(args)
    return ["sudo", "-u", user, "-H"] + list(args)


def run_as_user(user: str, args: Sequence[str], cwd: str | None = None) -> bool:
    try:
        run_cmd(user_argv(user, args), cwd=cwd)
        return True
    except (subprocess.CalledProcessError, OSError) as error:
        logging.error("Command failed as %s: %s - %s", user, " ".join(args), error)
        return False


def retry(
    action: Callable[[], bool],
    attempts: int,
    delay: float,
    label: str,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Call action up to attempts times, pausing delay seconds between tries."""
    for attempt in range(1, attempts + 1):
        try:
            if action():
                return True
        except (subprocess.CalledProcessError, OSError) as err:
            logging.error("%s attempt %d/%d failed: %s", label, attempt, attempts, err)
        if attempt < attempts:
            status_warn(f"{label} failed (attempt {attempt}/{attempts}); retrying in {delay}s")
            sleep(delay)
    return False
