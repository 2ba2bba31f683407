"""SSL certificate package.

Submodules:
- letsencrypt: certbot issuance, renewal and deletion
- selfsigned: openssl-generated certificates for local domains
- status: discovery and expiry reporting
- manager: setup/update/remove orchestration around the nginx vhost
"""
