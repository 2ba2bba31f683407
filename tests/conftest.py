"""Shared fixtures: every system path is redirected under tmp_path and
subprocess.run is replaced by a recorder so no real command is executed."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID


@dataclass
class Rule:
    prefix: list[str]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    times: int | None = None
    action: Callable | None = None


@dataclass
class Recorder:
    calls: list[list[str]] = field(default_factory=list)
    rules: list[Rule] = field(default_factory=list)

    def on(self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "",
           times: int | None = None, action: Callable | None = None) -> None:
        self.rules.append(Rule(list(prefix), returncode, stdout, stderr, times, action))

    def fail(self, *prefix: str, returncode: int = 1, times: int | None = None) -> None:
        self.on(*prefix, returncode=returncode, times=times)

    def _match(self, args: list[str]) -> Rule | None:
        for rule in self.rules:
            if args[: len(rule.prefix)] != rule.prefix:
                continue
            if rule.times is not None:
                if rule.times <= 0:
                    continue
                rule.times -= 1
            return rule
        return None

    def __call__(self, args, **kwargs):
        args = [str(a) for a in args]
        self.calls.append(args)
        rule = self._match(args)
        rc, out, err = 0, "", ""
        if rule is not None:
            rc, out, err = rule.returncode, rule.stdout, rule.stderr
            if rule.action is not None:
                rule.action(args, kwargs)
        if kwargs.get("check") and rc != 0:
            raise subprocess.CalledProcessError(rc, args, out, err)
        return subprocess.CompletedProcess(args, rc, out, err)

    def ran(self, *prefix: str) -> bool:
        return any(call[: len(prefix)] == list(prefix) for call in self.calls)

    def count(self, *prefix: str) -> int:
        return sum(1 for call in self.calls if call[: len(prefix)] == list(prefix))


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """init_logging() mutates root-logger handler levels (including pytest's
    capture handlers); restore them so caplog works in later tests."""
    root = logging.getLogger()
    level = root.level
    handler_levels = {h: h.level for h in root.handlers}
    yield
    root.setLevel(level)
    for h, lvl in handler_levels.items():
        h.setLevel(lvl)


@pytest.fixture
def recorder(monkeypatch) -> Recorder:
    rec = Recorder()
    monkeypatch.setattr(subprocess, "run", rec)
    return rec


@dataclass
class Sandbox:
    root: Path
    web_root: Path
    sites_available: Path
    sites_enabled: Path
    hosts_file: Path
    config_file: Path
    php_run: Path
    ssl_dir: Path
    le_live: Path
    backup_dir: Path


@pytest.fixture
def sandbox(tmp_path, monkeypatch, recorder) -> Sandbox:
    box = Sandbox(
        root=tmp_path,
        web_root=tmp_path / "var" / "www",
        sites_available=tmp_path / "nginx" / "sites-available",
        sites_enabled=tmp_path / "nginx" / "sites-enabled",
        hosts_file=tmp_path / "hosts",
        config_file=tmp_path / "site-manager" / "config",
        php_run=tmp_path / "run" / "php",
        ssl_dir=tmp_path / "ssl" / "site-manager",
        le_live=tmp_path / "letsencrypt" / "live",
        backup_dir=tmp_path / "backups",
    )
    for path in (box.web_root, box.sites_available, box.sites_enabled, box.php_run):
        path.mkdir(parents=True)
    box.hosts_file.write_text("127.0.0.1 localhost\n::1 localhost ip6-localhost\n")

    import sitemgr.backup
    import sitemgr.certs.letsencrypt
    import sitemgr.certs.selfsigned
    import sitemgr.hosts
    import sitemgr.nginx
    import sitemgr.permissions
    import sitemgr.projects
    import sitemgr.server
    import sitemgr.settings
    import sitemgr.utils

    patches = {
        sitemgr.settings: {
            "CONFIG_FILE": str(box.config_file),
            "PHP_RUN_DIR": str(box.php_run),
            "PHP_SOCKET": str(box.php_run) + "/php{version}-fpm.sock",
        },
        sitemgr.nginx: {
            "SITES_AVAILABLE": str(box.sites_available),
            "SITES_ENABLED": str(box.sites_enabled),
            "NGINX_LOG_DIR": str(tmp_path / "log" / "nginx"),
        },
        sitemgr.hosts: {"HOSTS_FILE": str(box.hosts_file)},
        sitemgr.projects: {"WEB_ROOT": str(box.web_root)},
        sitemgr.permissions: {"WEB_ROOT": str(box.web_root)},
        sitemgr.server: {"WEB_ROOT": str(box.web_root)},
        sitemgr.backup: {"WEB_ROOT": str(box.web_root), "BACKUP_DIR": str(box.backup_dir)},
        sitemgr.certs.selfsigned: {"SSL_DIR": str(box.ssl_dir)},
        sitemgr.certs.letsencrypt: {"LETSENCRYPT_LIVE": str(box.le_live)},
        sitemgr.utils: {"LOG_DIR": str(tmp_path / "log" / "site-manager")},
    }
    for module, values in patches.items():
        for name, value in values.items():
            monkeypatch.setattr(module, name, value)
    monkeypatch.setattr(sitemgr.utils, "is_root", lambda: False)
    return box


def make_cert(cert_path: Path, key_path: Path, name: str, days: int) -> None:
    """Write a self-signed PEM pair that expires `days` from now."""
    now = datetime.now(timezone.utc)
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, name)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=400))
        .not_valid_after(now + timedelta(days=days, hours=12))
        .sign(key, hashes.SHA256())
    )
    cert_path.parent.mkdir(parents=True, exist_ok=True)
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
    )


@pytest.fixture
def fake_openssl(recorder):
    """Make `openssl req` produce a real certificate at -out/-keyout."""

    def _action(args, kwargs):
        cert = Path(args[args.index("-out") + 1])
        key = Path(args[args.index("-keyout") + 1])
        days = int(args[args.index("-days") + 1])
        make_cert(cert, key, cert.stem, days)

    recorder.on("openssl", "req", action=_action)
    return recorder
