#!/usr/bin/env python3
"""CLI to provision a LEMP server and manage per-domain web projects.

Inputs: a subcommand and optional domain/path; no subcommand opens the
interactive menu.
Side effects: installs packages, writes Nginx vhosts and /etc/hosts lines,
issues certificates, creates backups. See `site-manager help`.
"""

import sys

from sitemgr import menu
from sitemgr.certs import manager
from sitemgr.server import check_dependencies
from sitemgr.utils import init_logging, is_root, status_fail

USAGE = """usage: site-manager [command]

  check                  show installed tools and versions
  setup                  initial server setup
  backup <domain>        back up project code and/or database
  restore <path>         restore a .tar.gz or .zip backup
  ssl <domain>           issue Let's Encrypt or self-signed certificate
  update-ssl [domain]    renew one or all certificates
  remove-ssl [domain]    remove a certificate and restore plain HTTP
  check-ssl [domain]     show certificate expiry
  configure              choose the default PHP version
  fix-permissions        repair ownership/permissions under the web root

With no command an interactive menu is shown."""

# command -> (handler, needs root, requires argument)
COMMANDS = {
    "check": (lambda arg: check_dependencies(), False, False),
    "setup": (lambda arg: menu.flow_setup_server(), True, False),
    "backup": (lambda arg: menu.flow_backup(arg), True, True),
    "restore": (lambda arg: menu.flow_restore(arg), True, True),
    "ssl": (lambda arg: menu.flow_setup_ssl(arg), True, True),
    "update-ssl": (lambda arg: manager.update_ssl(arg), True, False),
    "remove-ssl": (lambda arg: menu.flow_remove_ssl(arg), True, False),
    "check-ssl": (lambda arg: manager.check_ssl_status(arg), False, False),
    "configure": (lambda arg: menu.flow_configure(), True, False),
    "fix-permissions": (lambda arg: menu.flow_fix_permissions(), True, False),
}


def main(argv: list[str]) -> int:
    init_logging(None)
    if not argv:
        if not is_root():
            status_fail("site-manager must be run as root (try: sudo site-manager)")
            return 1
        return menu.main_menu()
    command = argv[0]
    if command in ("-h", "--help", "help"):
        print(USAGE)
        return 0
    if command not in COMMANDS:
        print(USAGE, file=sys.stderr)
        return 2
    handler, needs_root, needs_arg = COMMANDS[command]
    arg = argv[1] if len(argv) > 1 else None
    if needs_arg and not arg:
        status_fail(f"usage: site-manager {command} <{'path' if command == 'restore' else 'domain'}>")
        return 2
    if needs_root and not is_root():
        status_fail(f"'{command}' must be run as root (try: sudo site-manager {command})")
        return 1
    return 0 if handler(arg) else 1


def run() -> None:
    try:
        code = main(sys.argv[1:])
    except KeyboardInterrupt:
        print()
        code = 130
    raise SystemExit(code)


if __name__ == "__main__":
    run()
