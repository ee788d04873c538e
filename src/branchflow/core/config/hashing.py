# src/branchflow/core/config/hashing.py
"""
Identidade da configuração efetiva.

O hash é registrado em `inputs.config_hash` do Manifest de cada run e usa
a mesma serialização canônica das receitas de fingerprint.

Nota: a configuração não participa do fingerprint dos targets; alterar o
número de workers não invalida o cache.
"""

import hashlib
from typing import Any, Dict

from branchflow.core.fingerprint import canonical_json


def compute_config_hash(config: Dict[str, Any]) -> str:
    """
    SHA-256 (hex, 64 caracteres) do JSON canônico de `config`.

    Raises:
        TypeError: `config` não é um dicionário.
    """
    if not isinstance(config, dict):
        raise TypeError(f"config hash requires a dict, got {type(config).__name__}")
    return hashlib.sha256(canonical_json(config).encode("utf-8")).hexdigest()
