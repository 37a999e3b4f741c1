"""roletally - role-scoped Discord message activity reports."""

__version__ = "0.1.0"
