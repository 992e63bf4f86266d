"""Backup file lists, stream translation into archives, and restoring trees."""

__version__ = "1.1.15"