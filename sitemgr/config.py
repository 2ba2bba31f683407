"""Shared configuration constants for site-manager.

Centralizes paths, permissions and install knobs used by modules.
The only runtime-editable setting (php_version) lives in CONFIG_FILE.
"""

WEB_ROOT = "/var/www"
NGINX_DIR = "/etc/nginx"
SITES_AVAILABLE = f"{NGINX_DIR}/sites-available"
SITES_ENABLED = f"{NGINX_DIR}/sites-enabled"
NGINX_LOG_DIR = "/var/log/nginx"
CONFIG_DIR = "/etc/site-manager"
CONFIG_FILE = f"{CONFIG_DIR}/config"
LOG_DIR = "/var/log/site-manager"
BACKUP_DIR = "/var/backups/sites"
HOSTS_FILE = "/etc/hosts"
LOCALHOST_IP = "127.0.0.1"

PHP_RUN_DIR = "/run/php"
PHP_SOCKET = PHP_RUN_DIR + "/php{version}-fpm.sock"
PHP_VERSIONS = ("8.4", "8.3", "8.2", "8.1")
DEFAULT_PHP_VERSION = "8.1"
PHP_EXTENSIONS = (
    "fpm", "common", "mysql", "xml", "curl", "gd", "imagick", "cli",
    "dev", "imap", "mbstring", "opcache", "soap", "zip", "sqlite3",
)

SSL_DIR = "/etc/ssl/site-manager"
LETSENCRYPT_LIVE = "/etc/letsencrypt/live"
LOCAL_TLDS = (".test", ".local", ".dev")
SELF_SIGNED_DAYS = 365
SSL_WARN_DAYS = 30

WEB_GROUP = "www-data"
DIR_PERMS = 0o775
FILE_PERMS = 0o664
LARAVEL_WRITABLE_DIRS = ("storage", "bootstrap/cache", "database")

COMPOSER_DIR = "/usr/local/bin"
NODE_MAJOR = 18

# Fixed attempt counts and pause (seconds) between attempts
INSTALL_ATTEMPTS = 3
DB_INSTALL_ATTEMPTS = 4
COMPOSER_ATTEMPTS = 2
RETRY_DELAY = 5
