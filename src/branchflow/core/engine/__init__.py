# src/branchflow/core/engine/__init__.py
"""
Engine do Branchflow.

Componentes principais:
    - scheduler → decide entre cache e execução, expande targets dinâmicos
      e executa nós (inline ou em pool de threads)
    - results   → NodeStatus, NodeResult e RunResult

Invariantes:
    - Nós só executam após suas dependências terem gravado no store
    - Cada nó é avaliado no máximo uma vez por run
    - O resultado da run reflete explicitamente o estado de cada nó
"""

from .results import NodeResult, NodeStatus, RunResult
from .scheduler import Scheduler

__all__ = ["NodeResult", "NodeStatus", "RunResult", "Scheduler"]
