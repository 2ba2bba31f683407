import pytest

import sitemanager
from sitemgr import menu


@pytest.fixture
def as_root(monkeypatch, sandbox):
    monkeypatch.setattr(sitemanager, "is_root", lambda: True)


@pytest.fixture
def as_user(monkeypatch, sandbox):
    monkeypatch.setattr(sitemanager, "is_root", lambda: False)


def test_help(as_user, capsys):
    assert sitemanager.main(["help"]) == 0
    assert "usage: site-manager" in capsys.readouterr().out


def test_unknown_command(as_user, capsys):
    assert sitemanager.main(["frobnicate"]) == 2
    assert "usage: site-manager" in capsys.readouterr().err


def test_menu_requires_root(as_user, monkeypatch):
    monkeypatch.setattr(menu, "main_menu", lambda: pytest.fail("menu opened"))
    assert sitemanager.main([]) == 1


def test_menu_opens_as_root(as_root, monkeypatch):
    monkeypatch.setattr(menu, "main_menu", lambda: 0)
    assert sitemanager.main([]) == 0


def test_check_runs_without_root(as_user, monkeypatch):
    monkeypatch.setattr(sitemanager, "check_dependencies", lambda: True)
    assert sitemanager.main(["check"]) == 0
    monkeypatch.setattr(sitemanager, "check_dependencies", lambda: False)
    assert sitemanager.main(["check"]) == 1


def test_mutating_command_requires_root(as_user, monkeypatch):
    monkeypatch.setattr(menu, "flow_backup", lambda domain: pytest.fail("ran as user"))
    assert sitemanager.main(["backup", "shop.test"]) == 1


@pytest.mark.parametrize("command", ["backup", "restore", "ssl"])
def test_command_argument_required(as_root, command):
    assert sitemanager.main([command]) == 2


def test_backup_passes_domain(as_root, monkeypatch):
    seen = []
    monkeypatch.setattr(menu, "flow_backup", lambda domain: seen.append(domain) or True)
    assert sitemanager.main(["backup", "shop.test"]) == 0
    assert seen == ["shop.test"]


def test_restore_failure_exit_code(as_root, monkeypatch):
    monkeypatch.setattr(menu, "flow_restore", lambda path: False)
    assert sitemanager.main(["restore", "/tmp/x.tar.gz"]) == 1


def test_update_ssl_optional_domain(as_root, monkeypatch):
    seen = []
    monkeypatch.setattr(sitemanager.manager, "update_ssl", lambda domain: seen.append(domain) or True)
    assert sitemanager.main(["update-ssl"]) == 0
    assert sitemanager.main(["update-ssl", "shop.test"]) == 0
    assert seen == [None, "shop.test"]


def test_check_ssl_as_user(as_user, monkeypatch):
    monkeypatch.setattr(sitemanager.manager, "check_ssl_status", lambda domain: True)
    assert sitemanager.main(["check-ssl"]) == 0


def test_run_maps_interrupt_to_130(monkeypatch):
    def _interrupt(argv):
        raise KeyboardInterrupt

    monkeypatch.setattr(sitemanager, "main", _interrupt)
    with pytest.raises(SystemExit) as exc:
        sitemanager.run()
    assert exc.value.code == 130
