"""Module entry point: `python -m sitemgr` behaves like `site-manager`."""

from sitemanager import run

if __name__ == "__main__":
    run()
