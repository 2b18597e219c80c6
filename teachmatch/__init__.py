"""TeachMatch: substitute teacher matching with automated request escalation."""

__version__ = "0.1.0"
