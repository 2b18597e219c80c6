"""Outbound messaging connectors for TeachMatch."""

from .email_smtp import SMTPEmailConnector

__all__ = [
    "SMTPEmailConnector",
]
