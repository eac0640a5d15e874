"""keyrotate - per-user provider API key store with managed rotation."""

__version__ = "0.1.0"
__author__ = "keyrotate maintainers"
