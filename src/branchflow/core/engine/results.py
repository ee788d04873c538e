# src/branchflow/core/engine/results.py
"""
Resultados canônicos de uma run do Scheduler.

Cada nó avaliado (target estático, target dinâmico ou sub-target) produz
exatamente um `NodeResult`; a run inteira é consolidada em `RunResult`.

Decisões arquiteturais:
    - Status possuem valores textuais estáveis (persistidos no Manifest)
    - Resultados são imutáveis
    - Erros aparecem apenas como payload serializável (`payload["error"]`),
      nunca como stack trace
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class NodeStatus(str, Enum):
    """
    Status final de um nó.

    - BUILT: comando executado e valor persistido
    - CACHED: fingerprint inalterado, valor reutilizado
    - FAILED: comando (ou expansão) falhou; nada persistido
    - SKIPPED: uma dependência falhou ou foi pulada
    - CANCELED: não iniciado porque a run foi abortada (fail-fast)
    """
    BUILT = "built"
    CACHED = "cached"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELED = "canceled"


@dataclass(frozen=True)
class NodeResult:
    name: str
    status: NodeStatus
    summary: str = ""
    fingerprint: Optional[str] = None
    parent: Optional[str] = None
    index: Optional[int] = None
    seconds: float = 0.0
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_subtarget(self) -> bool:
        return self.parent is not None

    @property
    def ok(self) -> bool:
        return self.status in (NodeStatus.BUILT, NodeStatus.CACHED)


@dataclass(frozen=True)
class RunResult:
    """Resultado agregado de uma run, indexado pela chave do nó."""

    run_id: str
    nodes: Dict[str, NodeResult] = field(default_factory=dict)

    def __getitem__(self, name: str) -> NodeResult:
        return self.nodes[name]

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def _with(self, status: NodeStatus, subtargets: bool) -> List[str]:
        return [
            k for k, r in self.nodes.items()
            if r.status is status and (subtargets or not r.is_subtarget)
        ]

    def built(self, *, subtargets: bool = True) -> List[str]:
        return self._with(NodeStatus.BUILT, subtargets)

    def cached(self, *, subtargets: bool = True) -> List[str]:
        return self._with(NodeStatus.CACHED, subtargets)

    def failed(self, *, subtargets: bool = True) -> List[str]:
        return self._with(NodeStatus.FAILED, subtargets)

    def skipped(self, *, subtargets: bool = True) -> List[str]:
        return self._with(NodeStatus.SKIPPED, subtargets)

    def canceled(self, *, subtargets: bool = True) -> List[str]:
        return self._with(NodeStatus.CANCELED, subtargets)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.nodes.values())

    def summary(self) -> Dict[str, Any]:
        """
        Resumo para o operador: contagens por status, nós que falharam
        (com o erro) e nós pulados/cancelados em consequência.
        """
        counts = {s.value: 0 for s in NodeStatus}
        for r in self.nodes.values():
            counts[r.status.value] += 1
        return {
            "run_id": self.run_id,
            "counts": counts,
            "failed": {
                k: (self.nodes[k].payload.get("error") or {}).get("message", self.nodes[k].summary)
                for k in self.failed()
            },
            "skipped": self.skipped(),
            "canceled": self.canceled(),
        }
