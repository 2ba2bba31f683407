"""Interactive flows: gather input with prompts, then call the operation."""

from __future__ import annotations

from pathlib import Path

from rich.panel import Panel

from sitemgr import hosts, nginx, projects, prompts
from sitemgr.backup import DbCredentials, backup_site, default_backup_name, restore_site
from sitemgr.certs import manager, status
from sitemgr.config import BACKUP_DIR, PHP_VERSIONS, WEB_ROOT
from sitemgr.domains import is_local_domain, is_valid_domain, project_root
from sitemgr.permissions import fix_all_permissions
from sitemgr.server import setup_server
from sitemgr.settings import configure, get_php_version
from sitemgr.utils import console, current_user, status_fail, status_warn

BACKUP_TYPES = ("Both project code and database", "Project code only", "Database only")


def show_header() -> None:
    console.clear()
    console.print(Panel.fit("[bold]WELCOME TO SITE MANAGER[/bold]", style="blue"))


def ask_domain(text: str = "Enter domain name (e.g., example.test)") -> str | None:
    domain = prompts.ask_required(text).lower()
    if not is_valid_domain(domain):
        status_fail(f"invalid domain name: {domain!r}")
        return None
    return domain


def ask_db_credentials(default_name: str = "") -> DbCredentials:
    name = prompts.ask("Enter database name", default=default_name or None)
    user = prompts.ask("Enter database user", default="root")
    password = prompts.ask_secret("Enter database password")
    host = prompts.ask("Enter database host", default="localhost")
    return DbCredentials(name=name, user=user, password=password, host=host)


def pick_site(text: str) -> str | None:
    sites = nginx.list_sites()
    if not sites:
        status_warn("no sites configured")
        return None
    return sites[prompts.choose(text, sites)]


def pick_cert_domain() -> str | None:
    domains = status.cert_domains()
    if not domains:
        status_warn("no SSL certificates found")
        return None
    index = prompts.choose("Select domain", domains)
    return domains[index]


def flow_setup_server() -> bool:
    console.print("[yellow]This is the initial server setup[/yellow]")
    versions = list(PHP_VERSIONS)
    php_version = versions[prompts.choose("Select PHP version", versions)]
    password = prompts.ask_secret("MySQL root password (Enter to skip)")
    return setup_server(
        php_version,
        db_root_password=password or None,
        user=current_user(),
        confirm_continue=lambda label: prompts.confirm(
            f"Continue without {label}?", default=False
        ),
    )


def flow_create_site() -> bool:
    domain = ask_domain()
    if domain is None:
        return False
    path = prompts.ask(f"Project path relative to {WEB_ROOT}", default=domain)
    laravel = prompts.confirm("Is this a Laravel project?", default=False)
    return projects.create_site(domain, path, laravel, current_user())


def flow_delete_site() -> bool:
    domain = pick_site("Select project to delete")
    if domain is None:
        return False
    if not nginx.vhost_exists(domain):
        status_fail(f"no configuration found for {domain}")
        return False
    root = nginx.read_document_root(domain)
    console.print("\n[red]WARNING: This will permanently delete:[/red]")
    console.print(f"• Domain configuration: {nginx.conf_path(domain)}")
    if hosts.has_host(domain):
        console.print(f"• Hosts entry: {domain}")
    if root is not None:
        console.print(f"• Project files (optional): {project_root(root)}")
    if not prompts.confirm("Are you sure you want to do this?", default=False):
        console.print("Deletion cancelled")
        return True
    delete_files = False
    if root is not None and project_root(root).exists():
        delete_files = prompts.confirm("Delete project files?", default=False)
    return projects.delete_site(domain, delete_files)


def flow_move_project() -> bool:
    source = prompts.ask_required("Enter full path to project")
    domain = ask_domain()
    if domain is None:
        return False
    return projects.move_project(source, domain, current_user())


def flow_clone_project() -> bool:
    repo_url = prompts.ask_required("Git repository URL")
    domain = ask_domain()
    if domain is None:
        return False
    return projects.clone_project(repo_url, domain, current_user())


def flow_backup(domain: str | None = None) -> bool:
    if not domain:
        domain = pick_site("Select project to backup")
        if domain is None:
            return False
    dest = prompts.ask("Backup destination", default=BACKUP_DIR)
    name = prompts.ask("Backup name", default=default_backup_name(domain))
    kind = prompts.choose("Select backup type", BACKUP_TYPES)
    include_code = kind in (0, 1)
    include_db = kind in (0, 2)

    project_dir = None
    if include_code:
        root = nginx.read_document_root(domain)
        suggested = str(project_root(root)) if root is not None else None
        project_dir = prompts.ask("Project directory to backup", default=suggested)
        if not Path(project_dir).is_dir():
            status_fail(f"project directory {project_dir} does not exist")
            return False
    db = ask_db_credentials(domain.replace(".", "_")) if include_db else None
    archive = backup_site(
        domain, project_dir, dest, name,
        include_code=include_code, include_db=include_db, db=db,
    )
    return archive is not None


def flow_restore(path: str | None = None) -> bool:
    if not path:
        path = prompts.ask_required(f"Enter backup path (file name resolves in {BACKUP_DIR})")
    db = None
    if prompts.confirm("Restore a database dump if the backup has one?", default=False):
        db = ask_db_credentials()
    return restore_site(path, db=db)


def flow_setup_ssl(domain: str | None = None) -> bool:
    if not domain:
        domain = ask_domain("Enter domain for SSL")
        if domain is None:
            return False
    email = None
    if not is_local_domain(domain):
        email = prompts.ask("Email for Let's Encrypt notices (Enter to skip)", default="") or None
    return manager.setup_ssl(domain, email)


def flow_update_ssl() -> bool:
    domain = prompts.ask("Domain to renew (Enter for all)", default="")
    return manager.update_ssl(domain or None)


def flow_remove_ssl(domain: str | None = None) -> bool:
    if not domain:
        domain = pick_cert_domain()
        if domain is None:
            return False
    if not prompts.confirm(f"Remove SSL for {domain}?", default=False):
        console.print("Cancelled")
        return True
    return manager.remove_ssl(domain)


def flow_check_ssl() -> bool:
    domain = prompts.ask("Domain to check (Enter for all)", default="")
    return manager.check_ssl_status(domain or None)


def flow_fix_permissions() -> bool:
    return fix_all_permissions(current_user())


def flow_configure() -> bool:
    console.print(f"Current PHP version: [bold]{get_php_version()}[/bold]")
    versions = list(PHP_VERSIONS)
    return configure(versions[prompts.choose("Select PHP version", versions)])


MENU = (
    ("Create New Project", flow_create_site),
    ("Delete Existing Project", flow_delete_site),
    ("Move Project", flow_move_project),
    ("Clone from Git", flow_clone_project),
    ("Backup Project", flow_backup),
    ("Restore Project", flow_restore),
    ("Setup SSL", flow_setup_ssl),
    ("Update SSL", flow_update_ssl),
    ("Remove SSL", flow_remove_ssl),
    ("Check SSL Status", flow_check_ssl),
    ("Fix Permissions", flow_fix_permissions),
    ("Configure PHP Version", flow_configure),
    ("Exit", None),
)


def main_menu() -> int:
    while True:
        show_header()
        console.print("Main Operations:")
        index = prompts.choose(f"Select operation [1-{len(MENU)}]", [label for label, _ in MENU])
        label, action = MENU[index]
        if action is None:
            return 0
        action()
        prompts.ask("Press Enter to continue", default="")
