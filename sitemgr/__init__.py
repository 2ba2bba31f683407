"""Server provisioning and per-domain site management.

Submodules:
- settings: /etc/site-manager/config and PHP version detection
- nginx: vhost files, enable links, nginx test/reload
- hosts: managed /etc/hosts entries
- projects: create/delete/move/clone projects
- permissions: ownership, modes and ACLs
- server: package installation and dependency checks
- certs: Let's Encrypt and self-signed certificates
- backup: archive and restore projects and databases
- menu: interactive prompts
"""

__version__ = "1.0.0"
