# src/branchflow/core/dynamic/slicing.py
"""
Contagem e fatiamento de elementos para ramificação dinâmica.

Definição de "elemento":
    - pandas.DataFrame → linhas (cada elemento é um DataFrame de uma linha)
    - numpy.ndarray    → primeiro eixo (array 0-d é um único elemento)
    - pandas.Series, list, tuple, range → membros
    - Mapping          → valores, na ordem de inserção
    - str, bytes, sets e escalares → um único elemento (o próprio valor)

Índices aqui são 0-based; a numeração 1-based pertence aos sub-targets.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Sequence

import numpy as np
import pandas as pd


def element_count(value: Any) -> int:
    if isinstance(value, pd.DataFrame):
        return len(value.index)
    if isinstance(value, np.ndarray):
        return 1 if value.ndim == 0 else int(value.shape[0])
    if isinstance(value, (str, bytes, bytearray)):
        return 1
    if isinstance(value, (pd.Series, list, tuple, range, Mapping)):
        return len(value)
    return 1


def element_at(value: Any, i: int) -> Any:
    n = element_count(value)
    if not 0 <= i < n:
        raise IndexError(f"element {i} out of range for {n} element(s)")

    if isinstance(value, pd.DataFrame):
        return value.iloc[[i]]
    if isinstance(value, np.ndarray):
        return value if value.ndim == 0 else value[i]
    if isinstance(value, (str, bytes, bytearray)):
        return value
    if isinstance(value, pd.Series):
        return value.iloc[i]
    if isinstance(value, Mapping):
        return list(value.values())[i]
    if isinstance(value, (list, tuple, range)):
        return value[i]
    return value


def take_elements(value: Any, positions: Sequence[int]) -> Any:
    """
    Elementos nas posições dadas, preservando a estrutura do valor.

    DataFrame → linhas selecionadas (índice reiniciado), ndarray → `take` no
    primeiro eixo, Series → membros selecionados (índice reiniciado), demais
    → lista dos elementos. Um elemento que é ele próprio uma lista continua
    sendo um membro da lista resultante.
    """
    positions = list(positions)
    n = element_count(value)
    for i in positions:
        if not 0 <= i < n:
            raise IndexError(f"element {i} out of range for {n} element(s)")

    if isinstance(value, pd.DataFrame):
        return value.iloc[positions].reset_index(drop=True)
    if isinstance(value, np.ndarray) and value.ndim >= 1:
        return value.take(positions, axis=0)
    if isinstance(value, pd.Series):
        return value.iloc[positions].reset_index(drop=True)
    return [element_at(value, i) for i in positions]
