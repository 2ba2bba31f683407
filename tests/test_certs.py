from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_cert
from sitemgr import nginx, settings
from sitemgr.certs import letsencrypt, manager, selfsigned, status


@pytest.fixture
def site(sandbox):
    root = sandbox.web_root / "shop"
    root.mkdir()
    nginx.write_vhost("shop.test", nginx.render_vhost("shop.test", root, "8.3"))
    nginx.enable_vhost("shop.test")
    return root


@pytest.fixture
def live_site(sandbox):
    root = sandbox.web_root / "example"
    root.mkdir()
    nginx.write_vhost("example.com", nginx.render_vhost("example.com", root, "8.3"))
    return root


def _le_cert(sandbox, domain, days):
    live = sandbox.le_live / domain
    make_cert(live / "fullchain.pem", live / "privkey.pem", domain, days)


@pytest.mark.parametrize(
    "days, expected",
    [(-1, status.EXPIRED), (0, status.EXPIRING), (30, status.EXPIRING), (31, status.VALID)],
)
def test_classify(days, expected):
    assert status.classify(days, warn_days=30) == expected


def test_openssl_command_requests_san_extensions(sandbox):
    cmd = selfsigned.build_openssl_command("shop.test", days=365)
    assert cmd[:4] == ["openssl", "req", "-x509", "-nodes"]
    assert cmd[cmd.index("-days") + 1] == "365"
    assert cmd[-2:] == ["-extensions", "v3_req"]
    conf = selfsigned.render_openssl_config("shop.test")
    assert "DNS.1 = shop.test" in conf
    assert "DNS.2 = www.shop.test" in conf


def test_certbot_command_email_handling():
    with_email = letsencrypt.build_certbot_command("example.com", "ops@example.com")
    assert with_email[-2:] == ["-m", "ops@example.com"]
    without = letsencrypt.build_certbot_command("example.com")
    assert without[-1] == "--register-unsafely-without-email"
    assert "--non-interactive" in without


def test_setup_ssl_local_domain_uses_self_signed(site, fake_openssl, sandbox):
    assert manager.setup_ssl("shop.test") is True
    assert selfsigned.has_selfsigned("shop.test")
    conf = nginx.conf_path("shop.test").read_text()
    assert "listen 443 ssl" in conf
    assert str(selfsigned.cert_file("shop.test")) in conf
    assert "return 301 https://" in conf
    assert nginx.read_document_root("shop.test") == site
    assert not nginx.backup_path("shop.test").exists()
    assert (selfsigned.key_file("shop.test").stat().st_mode & 0o777) == 0o600
    assert fake_openssl.ran("systemctl", "reload", "nginx")


def test_self_signed_rolls_back_when_nginx_rejects(site, fake_openssl):
    before = nginx.conf_path("shop.test").read_text()
    fake_openssl.fail("nginx", "-t")
    assert manager.setup_ssl("shop.test") is False
    assert nginx.conf_path("shop.test").read_text() == before
    assert not nginx.backup_path("shop.test").exists()
    assert not fake_openssl.ran("systemctl", "reload", "nginx")


def test_self_signed_requires_vhost(sandbox, fake_openssl):
    assert manager.setup_ssl("ghost.test") is False
    assert not fake_openssl.ran("openssl")


def test_openssl_failure_leaves_vhost_alone(site, recorder):
    before = nginx.conf_path("shop.test").read_text()
    recorder.fail("openssl", "req")
    assert manager.setup_ssl("shop.test") is False
    assert nginx.conf_path("shop.test").read_text() == before


def test_public_domain_uses_certbot(live_site, recorder, monkeypatch):
    monkeypatch.setattr(letsencrypt, "command_exists", lambda name: True)
    assert manager.setup_ssl("example.com", "ops@example.com") is True
    assert recorder.ran("certbot", "--nginx", "-d", "example.com")
    assert not recorder.ran("apt-get")
    assert not nginx.backup_path("example.com").exists()


def test_certbot_installed_when_missing(live_site, recorder, monkeypatch):
    monkeypatch.setattr(letsencrypt, "command_exists", lambda name: False)
    assert manager.setup_ssl("example.com") is True
    assert recorder.ran("apt-get", "install", "-y", "certbot", "python3-certbot-nginx")


def test_certbot_failure_restores_vhost(live_site, recorder, monkeypatch):
    monkeypatch.setattr(letsencrypt, "command_exists", lambda name: True)
    before = nginx.conf_path("example.com").read_text()

    def _certbot_edits(args, kwargs):
        nginx.conf_path("example.com").write_text("# half-written by certbot\n")

    recorder.on("certbot", "--nginx", returncode=1, action=_certbot_edits)
    assert manager.setup_ssl("example.com") is False
    assert nginx.conf_path("example.com").read_text() == before
    assert not nginx.backup_path("example.com").exists()


def test_collect_reports_expiry(sandbox):
    make_cert(selfsigned.cert_file("old.test"), selfsigned.key_file("old.test"), "old.test", -5)
    make_cert(selfsigned.cert_file("soon.test"), selfsigned.key_file("soon.test"), "soon.test", 10)
    _le_cert(sandbox, "example.com", 80)
    results = {item.domain: item for item in status.collect()}
    assert sorted(results) == ["example.com", "old.test", "soon.test"]
    assert results["old.test"].state == status.EXPIRED
    assert results["soon.test"].state == status.EXPIRING
    assert results["soon.test"].days_left == 10
    assert results["example.com"].kind == status.LETSENCRYPT
    assert results["example.com"].state == status.VALID


def test_domain_status_with_fixed_clock(sandbox):
    make_cert(selfsigned.cert_file("a.test"), selfsigned.key_file("a.test"), "a.test", 100)
    later = datetime.now(timezone.utc) + timedelta(days=95)
    item = status.domain_status("a.test", now=later)
    assert item.state == status.EXPIRING
    assert item.days_left == 5


def test_unreadable_and_missing_certificates(sandbox):
    sandbox.ssl_dir.mkdir(parents=True)
    selfsigned.cert_file("bad.test").write_text("not a certificate")
    selfsigned.key_file("bad.test").write_text("key")
    assert status.domain_status("bad.test").state == status.UNREADABLE
    assert status.domain_status("none.test").state == status.MISSING


def test_letsencrypt_preferred_over_self_signed(sandbox):
    make_cert(selfsigned.cert_file("both.dev"), selfsigned.key_file("both.dev"), "both.dev", 50)
    _le_cert(sandbox, "both.dev", 60)
    kind, path = status.locate("both.dev")
    assert kind == status.LETSENCRYPT
    assert path == letsencrypt.fullchain_file("both.dev")


def test_check_ssl_status_result(sandbox):
    make_cert(selfsigned.cert_file("ok.test"), selfsigned.key_file("ok.test"), "ok.test", 200)
    assert manager.check_ssl_status() is True
    assert manager.check_ssl_status("ok.test") is True
    assert manager.check_ssl_status("none.test") is False
    make_cert(selfsigned.cert_file("old.test"), selfsigned.key_file("old.test"), "old.test", -1)
    assert manager.check_ssl_status() is False


def test_check_ssl_status_with_no_certificates(sandbox):
    assert manager.check_ssl_status() is True


def test_update_single_self_signed_domain(site, fake_openssl):
    make_cert(selfsigned.cert_file("shop.test"), selfsigned.key_file("shop.test"), "shop.test", 3)
    assert manager.update_ssl("shop.test") is True
    assert fake_openssl.count("openssl", "req") == 1
    assert status.domain_status("shop.test").state == status.VALID


def test_update_single_letsencrypt_domain(sandbox, recorder):
    _le_cert(sandbox, "example.com", 5)
    assert manager.update_ssl("example.com") is True
    assert recorder.ran("certbot", "renew", "--non-interactive", "--cert-name", "example.com")


def test_update_unknown_domain_fails(sandbox, recorder):
    assert manager.update_ssl("ghost.test") is False
    assert not recorder.ran("nginx", "-t")


def test_update_all_regenerates_stale_self_signed(sandbox, fake_openssl, monkeypatch):
    monkeypatch.setattr(manager, "command_exists", lambda name: True)
    make_cert(selfsigned.cert_file("ok.test"), selfsigned.key_file("ok.test"), "ok.test", 200)
    make_cert(selfsigned.cert_file("old.test"), selfsigned.key_file("old.test"), "old.test", -3)
    assert manager.update_ssl() is True
    assert fake_openssl.ran("certbot", "renew", "--non-interactive")
    regenerated = [c for c in fake_openssl.calls if c[:2] == ["openssl", "req"]]
    assert len(regenerated) == 1
    assert str(selfsigned.cert_file("old.test")) in regenerated[0]
    assert fake_openssl.ran("systemctl", "reload", "nginx")


def test_update_all_skips_certbot_when_absent(sandbox, recorder, monkeypatch):
    monkeypatch.setattr(manager, "command_exists", lambda name: False)
    assert manager.update_ssl() is True
    assert not recorder.ran("certbot")


def test_remove_self_signed_restores_plain_vhost(site, fake_openssl):
    assert manager.setup_ssl("shop.test") is True
    assert manager.remove_ssl("shop.test") is True
    conf = nginx.conf_path("shop.test").read_text()
    assert "443" not in conf
    assert "listen 80" in conf
    assert nginx.read_document_root("shop.test") == site
    assert not selfsigned.has_selfsigned("shop.test")
    assert not selfsigned.conf_file("shop.test").exists()


def test_remove_keeps_certs_when_nginx_rejects_plain_config(site, fake_openssl):
    assert manager.setup_ssl("shop.test") is True
    ssl_conf = nginx.conf_path("shop.test").read_text()
    fake_openssl.fail("nginx", "-t")
    assert manager.remove_ssl("shop.test") is False
    assert nginx.conf_path("shop.test").read_text() == ssl_conf
    assert selfsigned.has_selfsigned("shop.test")


def test_remove_letsencrypt_calls_certbot_delete(sandbox, live_site, recorder):
    _le_cert(sandbox, "example.com", 60)
    assert manager.remove_ssl("example.com") is True
    assert recorder.ran("certbot", "delete", "--cert-name", "example.com")


def test_remove_without_certificate_fails(site, recorder):
    assert manager.remove_ssl("shop.test") is False
    assert not recorder.ran("systemctl")


def test_ssl_rewrite_keeps_site_php_version(sandbox, fake_openssl):
    settings.write_config_value("php_version", "8.3")
    root = sandbox.web_root / "shop"
    root.mkdir()
    nginx.write_vhost("shop.test", nginx.render_vhost("shop.test", root))
    assert nginx.read_php_version("shop.test") == "8.3"

    settings.write_config_value("php_version", "8.2")
    assert manager.setup_ssl("shop.test") is True
    assert nginx.read_php_version("shop.test") == "8.3"
    assert "php8.2-fpm.sock" not in nginx.conf_path("shop.test").read_text()

    assert manager.remove_ssl("shop.test") is True
    assert nginx.read_php_version("shop.test") == "8.3"
