"""
Factory for the directory (mailing list) adapter.
"""
from __future__ import annotations

from application.ports.directory import DirectoryPort
from .mailerlite_client import MailerLiteClient


def get_directory() -> DirectoryPort:
    return MailerLiteClient()


__all__ = ["MailerLiteClient", "get_directory"]
