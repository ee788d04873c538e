# src/branchflow/core/plan/types.py
"""
Tipos canônicos do plano do Branchflow.

Componentes principais:
    - TargetFormat → dica de serialização (default / tabela / arquivo)
    - PatternKind  → tipo de ramificação dinâmica (map / cross / combine)
    - DynamicSpec  → especificação dinâmica de um target
    - Target       → unidade nomeada e cacheável de computação

Invariantes:
    - Enums possuem valores textuais canônicos (persistidos no store)
    - Target é imutável; referências são explícitas desde a construção
    - Tipos não dependem do scheduler nem do store
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple


class TargetFormat(str, Enum):
    """
    Formato de persistência do valor de um target.

    - DEFAULT: qualquer objeto Python (joblib)
    - TABLE: pandas.DataFrame orientado a linhas (CSV)
    - FILE: o comando retorna caminho(s) de arquivo; o conteúdo é rastreado
    """
    DEFAULT = "default"
    TABLE = "table"
    FILE = "file"


class PatternKind(str, Enum):
    MAP = "map"
    CROSS = "cross"
    COMBINE = "combine"


@dataclass(frozen=True)
class DynamicSpec:
    """
    Especificação de ramificação dinâmica.

    - kind: map, cross ou combine
    - variables: targets de agrupamento, na ordem declarada
    - by: variável de grupo (apenas combine)
    """
    kind: PatternKind
    variables: Tuple[str, ...]
    by: Optional[str] = None

    def names(self) -> Tuple[str, ...]:
        if self.by is None:
            return self.variables
        return self.variables + (self.by,)

    def describe(self) -> str:
        args = list(self.variables)
        if self.by is not None:
            args.append(f"by={self.by}")
        return f"{self.kind.value}({', '.join(args)})"


@dataclass(frozen=True)
class Target:
    """
    Unidade nomeada de computação em um plano.

    Campos:
        - name: nome único (identificador Python)
        - command: callable invocado com as dependências como argumentos nomeados
        - references: nomes referenciados pelo comando (explícitos, ver `target()`)
        - parameters: nomes aceitos pelo comando; None quando aceita **kwargs
        - pattern: especificação dinâmica (None para targets estáticos)
        - format: formato de persistência
        - hpc_eligible: False força execução na thread coordenadora
        - file_inputs: arquivos cujo conteúdo participa do fingerprint

    Referências a nomes não declarados no plano são dependências externas
    (ambiente) e não geram arestas.
    """
    name: str
    command: Callable[..., Any]
    references: Tuple[str, ...] = ()
    parameters: Optional[Tuple[str, ...]] = None
    pattern: Optional[DynamicSpec] = None
    format: TargetFormat = TargetFormat.DEFAULT
    hpc_eligible: bool = True
    file_inputs: Tuple[str, ...] = ()

    @property
    def is_dynamic(self) -> bool:
        return self.pattern is not None

    def accepts(self, name: str) -> bool:
        return self.parameters is None or name in self.parameters
