"""Shared services for the MediMind API."""

from medimind.api.services.encryption import (
    PHIEncryptionService,
    anonymize,
    get_encryption_service,
    hash_identifier,
)

__all__ = [
    "PHIEncryptionService",
    "anonymize",
    "get_encryption_service",
    "hash_identifier",
]
