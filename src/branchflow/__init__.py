# src/branchflow/__init__.py
"""
Branchflow — scheduler de dependências com ramificação dinâmica.

Um plano é uma lista de targets nomeados; as dependências vêm dos nomes
dos parâmetros de cada comando. O Branchflow ordena o grafo, reutiliza
valores cujo fingerprint não mudou, expande targets dinâmicos
(`map_`, `cross`, `combine`) em sub-targets descobertos em runtime e
persiste tudo em um store endereçado por conteúdo.

Exemplo:

    from branchflow import MemoryContentStore, combine, make, read, target

    plan = [
        target("dataset", lambda: [10, 20, 30, 40]),
        target("continent", lambda: ["A", "A", "B", "B"]),
        target(
            "model",
            lambda dataset, continent: {continent: dataset},
            pattern=combine("dataset", by="continent"),
        ),
    ]
    store = MemoryContentStore()
    make(plan, store=store)
    read("model", store=store)   # [{"A": [10, 20]}, {"B": [30, 40]}]

Arquitetura em alto nível:
    - core.plan         → targets, padrões dinâmicos e PlanGraph
    - core.fingerprint  → hashing canônico
    - core.dynamic      → expansão e agregação
    - core.engine       → Scheduler
    - persistence       → ContentStore e formatos
    - api               → make / outdated / read / dependency_graph / meta
"""

from ._version import __version__
from .api import (
    DependencyGraph,
    dependency_graph,
    invalidate,
    make,
    meta,
    outdated,
    prune,
    read,
)
from .core.engine import NodeStatus, RunResult
from .core.plan import Target, TargetFormat, combine, cross, map_, target
from .persistence import FileContentStore, MemoryContentStore

__all__ = [
    "__version__",
    "DependencyGraph",
    "dependency_graph",
    "invalidate",
    "make",
    "meta",
    "outdated",
    "prune",
    "read",
    "NodeStatus",
    "RunResult",
    "Target",
    "TargetFormat",
    "combine",
    "cross",
    "map_",
    "target",
    "FileContentStore",
    "MemoryContentStore",
]
