# src/branchflow/core/config/merge.py
"""
Deep-merge de configuração (defaults ← arquivo local ← overrides).

Regras, por chave:
    - dois dicts: merge recursivo
    - override list: substitui a lista inteira
    - None de qualquer lado: o override vence (ex.: `engine.workers: null`)
    - mesmo tipo escalar: o override vence
    - tipos diferentes: ConfigTypeConflictError, com o caminho da chave

Os dicionários de entrada nunca são mutados.
"""

from copy import deepcopy
from typing import Any, Dict, Tuple

from .errors import ConfigTypeConflictError


def _merged(path: Tuple[str, ...], current: Any, incoming: Any) -> Any:
    if isinstance(current, dict) and isinstance(incoming, dict):
        out = dict(current)
        for key, value in incoming.items():
            out[key] = _merged(path + (str(key),), current[key], value) if key in current else deepcopy(value)
        return out

    replaceable = isinstance(incoming, list) or current is None or incoming is None
    if not replaceable and type(current) is not type(incoming):
        raise ConfigTypeConflictError(
            f"Conflito de tipo em '{'.'.join(path)}': "
            f"{type(current).__name__} vs {type(incoming).__name__}"
        )
    return deepcopy(incoming)


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Retorna um novo dicionário com `override` aplicado sobre `base`.

    Raises:
        ConfigTypeConflictError: raízes que não são dict, ou conflito de tipo.
    """
    if not isinstance(base, dict) or not isinstance(override, dict):
        raise ConfigTypeConflictError(
            f"deep_merge requires two dicts, got {type(base).__name__} and {type(override).__name__}"
        )
    return _merged((), deepcopy(base), override)
