# src/branchflow/core/plan/registry.py
"""
Registro estrutural de targets.

O registry valida a unicidade de nomes e preserva a ordem de declaração,
antes de qualquer planejamento ou execução.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from branchflow.core.exceptions import DuplicateTargetError, PlanDefinitionError

from .types import Target


@dataclass
class TargetRegistry:
    """
    Registro canônico de targets.

    Invariantes:
        - Cada nome é único no registry
        - `list()` reflete exatamente a ordem de declaração
    """

    _targets: Dict[str, Target] = field(default_factory=dict, init=False, repr=False)
    _order: List[str] = field(default_factory=list, init=False, repr=False)

    def add(self, target: Target) -> None:
        if not isinstance(target, Target):
            raise PlanDefinitionError(
                message="O plano aceita apenas instâncias de Target",
                details={"received": type(target).__name__},
                hint="Declare targets com branchflow.target(...).",
            )

        if target.name in self._targets:
            raise DuplicateTargetError(
                message=f"Duplicate target name: {target.name}",
                details={"target": target.name},
                hint="Cada target deve ter um nome único no plano.",
            )

        self._targets[target.name] = target
        self._order.append(target.name)

    def get(self, name: str) -> Target:
        return self._targets[name]

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def list(self) -> List[Target]:
        return [self._targets[n] for n in self._order]
