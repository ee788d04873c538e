# src/branchflow/core/fingerprint/__init__.py
"""Fingerprints de conteúdo: valores, comandos, arquivos e receitas de nós."""

from .fingerprinter import (
    FINGERPRINT_VERSION,
    Fingerprinter,
    canonical_json,
    hash_command,
    hash_file,
    hash_value,
)

__all__ = [
    "FINGERPRINT_VERSION",
    "Fingerprinter",
    "canonical_json",
    "hash_command",
    "hash_file",
    "hash_value",
]
