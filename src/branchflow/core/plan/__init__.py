# src/branchflow/core/plan/__init__.py
"""
# Plano — Branchflow

Um plano é uma lista ordenada de targets declarados com `target(...)`.

## Componentes

- **types**: `Target`, `TargetFormat`, `DynamicSpec`, `PatternKind`
- **target**: builder `target()`, padrões `map_()`, `cross()`, `combine()`
  e a análise estática de referências
- **registry**: unicidade de nomes e ordem de declaração
- **graph**: `PlanGraph`, o DAG estático com ordem topológica determinística
"""

from .graph import PlanGraph
from .registry import TargetRegistry
from .target import combine, cross, infer_references, map_, target
from .types import DynamicSpec, PatternKind, Target, TargetFormat

__all__ = [
    "PlanGraph",
    "TargetRegistry",
    "combine",
    "cross",
    "infer_references",
    "map_",
    "target",
    "DynamicSpec",
    "PatternKind",
    "Target",
    "TargetFormat",
]
