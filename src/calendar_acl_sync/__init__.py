"""Calendar ACL Sync: keep course calendar permissions in line with the roster."""

__version__ = "0.1.0"
