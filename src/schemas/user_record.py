"""Mirrored user representation for permission checks."""
from dataclasses import dataclass


@dataclass
class UserRecord:
    """
    Read-only snapshot of a user document taken from the system of record.

    The lifecycle of the user (role changes, suspension) is owned by the system of
    record; the core only reads it. Snapshots are what the permission cache stores,
    so never hand out an ORM object here.
    """

    uid: str
    role: str
    email: str | None = None
    display_name: str | None = None
    suspended: bool = False
    deactivated: bool = False
