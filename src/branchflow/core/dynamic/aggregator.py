# src/branchflow/core/dynamic/aggregator.py
"""
Aggregator — semântica de redução de `combine()` e de leituras agregadas.

O engine só fornece a sequência ordenada de valores de um grupo; a função
de combinação definitiva é do comando do target. A combinação padrão é
concatenação:

    - todos DataFrame → pandas.concat (linhas, índice reiniciado)
    - todos Series    → pandas.concat
    - todos ndarray (ndim >= 1) → numpy.concatenate
    - todos list      → lista achatada em um nível
    - caso contrário  → lista dos valores (tuplas são membros inteiros)
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from branchflow.core.fingerprint import hash_value


class Aggregator:
    """Combinação e agrupamento de valores de sub-targets."""

    @staticmethod
    def aggregate(values: Sequence[Any]) -> Any:
        values = list(values)
        if not values:
            return []

        if all(isinstance(v, pd.DataFrame) for v in values):
            return pd.concat(values, ignore_index=True)
        if all(isinstance(v, pd.Series) for v in values):
            return pd.concat(values)
        if all(isinstance(v, np.ndarray) and v.ndim >= 1 for v in values):
            return np.concatenate(values)
        if all(isinstance(v, list) for v in values):
            return [item for v in values for item in v]
        return values

    @staticmethod
    def group_value(element: Any) -> Any:
        """Normaliza um elemento da variável de grupo para um valor escalar."""
        if isinstance(element, pd.DataFrame) and len(element.index) == 1:
            row = element.iloc[0].tolist()
            element = row[0] if len(row) == 1 else tuple(row)
        if isinstance(element, np.generic):
            return element.item()
        if isinstance(element, np.ndarray) and element.ndim == 0:
            return element.item()
        return element

    @classmethod
    def partition(cls, keys: Sequence[Any]) -> List[Tuple[Any, List[int]]]:
        """
        Agrupa posições por valor de chave, na ordem da primeira aparição.

        Chaves não hasheáveis são comparadas pelo hash de conteúdo.
        """
        groups: Dict[Any, Tuple[Any, List[int]]] = {}
        for pos, raw in enumerate(keys):
            key = cls.group_value(raw)
            try:
                identity: Any = ("value", key)
                hash(identity)
            except TypeError:
                identity = ("content", hash_value(key))
            if identity not in groups:
                groups[identity] = (key, [])
            groups[identity][1].append(pos)
        return list(groups.values())

    @classmethod
    def group(cls, keys: Sequence[Any], values: Sequence[Any]) -> List[Tuple[Any, Any]]:
        """Pares `(chave, membros)` por grupo, na ordem da primeira aparição."""
        keys = list(keys)
        values = list(values)
        if len(keys) != len(values):
            raise ValueError(f"keys and values differ in length: {len(keys)} vs {len(values)}")
        return [(key, [values[p] for p in positions]) for key, positions in cls.partition(keys)]
