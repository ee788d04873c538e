# src/branchflow/core/plan/graph.py
"""
Grafo estático de dependências do plano (PlanGraph).

Este módulo valida a estrutura do plano e produz uma ordem topológica
determinística dos targets declarados.

O planner opera exclusivamente em nível estrutural:
    - nomes de targets (unicidade)
    - referências explícitas (arestas apenas para targets declarados)
    - variáveis de padrões dinâmicos (devem ser targets declarados)
    - formação de ciclos

Decisões arquiteturais:
    - Ordenação topológica determinística (Kahn modificado)
    - Empates são resolvidos pela ordem de declaração
    - Erros estruturais são fatais e ocorrem antes de qualquer execução
    - Targets dinâmicos ocupam um único nó; o fan-out é resolvido em runtime

Limites explícitos:
    - Não executa targets
    - Não calcula fingerprints
    - Não interage com o store
"""

from __future__ import annotations

import heapq
from typing import Dict, Iterable, List, Optional, Set, Tuple

from branchflow.core.exceptions import CyclicPlanError, PlanDefinitionError

from .registry import TargetRegistry
from .types import Target


class PlanGraph:
    """
    DAG de targets com ordem topológica determinística.

    Invariantes:
        - Nenhum target aparece antes de suas dependências em `order`
        - Todos os targets aparecem exatamente uma vez
        - A mesma declaração sempre produz a mesma ordem
    """

    def __init__(self, targets: Iterable[Target]):
        registry = TargetRegistry()
        for t in targets:
            registry.add(t)

        self._targets: Dict[str, Target] = {t.name: t for t in registry.list()}
        self._position: Dict[str, int] = {name: i for i, name in enumerate(self._targets)}

        self._deps: Dict[str, List[str]] = {}
        self._dependents: Dict[str, List[str]] = {name: [] for name in self._targets}

        for name, t in self._targets.items():
            if t.pattern is not None:
                unknown = [v for v in t.pattern.names() if v not in self._targets]
                if unknown:
                    raise PlanDefinitionError(
                        message=f"Target '{name}' ramifica sobre nomes não declarados",
                        details={"target": name, "unknown": unknown, "pattern": t.pattern.describe()},
                        hint="Variáveis de map/cross/combine devem ser targets do plano.",
                    )

            deps = [r for r in t.references if r in self._targets]
            self._deps[name] = deps
            for dep in deps:
                self._dependents[dep].append(name)

        self._order: List[str] = self._toposort()

    # ------------------------------------------------------------------
    # Ordenação
    # ------------------------------------------------------------------
    def _toposort(self) -> List[str]:
        incoming: Dict[str, int] = {name: len(deps) for name, deps in self._deps.items()}

        ready: List[Tuple[int, str]] = [
            (self._position[name], name) for name, c in incoming.items() if c == 0
        ]
        heapq.heapify(ready)
        order: List[str] = []

        while ready:
            _, name = heapq.heappop(ready)
            order.append(name)
            for child in self._dependents[name]:
                incoming[child] -= 1
                if incoming[child] == 0:
                    heapq.heappush(ready, (self._position[child], child))

        if len(order) != len(self._targets):
            remaining = {n for n, c in incoming.items() if c > 0}
            cycle = self._find_cycle(remaining)
            raise CyclicPlanError(
                message="Cycle detected in target dependency graph: " + " -> ".join(cycle),
                details={"cycle": cycle, "targets": sorted(remaining, key=self._position.get)},
                hint="Remova a referência circular entre os targets listados.",
            )

        return order

    def _find_cycle(self, remaining: Set[str]) -> List[str]:
        # Todo nó restante tem ao menos uma dependência restante; seguir
        # dependências a partir de qualquer nó fecha um ciclo.
        start = min(remaining, key=self._position.get)
        path: List[str] = []
        seen: Dict[str, int] = {}
        node = start
        while node not in seen:
            seen[node] = len(path)
            path.append(node)
            node = next(d for d in self._deps[node] if d in remaining)
        cycle = path[seen[node]:] + [node]
        cycle.reverse()
        return cycle

    # ------------------------------------------------------------------
    # Introspecção
    # ------------------------------------------------------------------
    @property
    def targets(self) -> List[Target]:
        """Targets na ordem de declaração."""
        return list(self._targets.values())

    @property
    def order(self) -> List[str]:
        """Nomes em ordem topológica (empates pela ordem de declaração)."""
        return list(self._order)

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    def target(self, name: str) -> Target:
        return self._targets[name]

    def position(self, name: str) -> int:
        return self._position[name]

    def dependencies(self, name: str) -> List[str]:
        return list(self._deps[name])

    def dependents(self, name: str) -> List[str]:
        return list(self._dependents[name])

    def edges(self) -> List[Tuple[str, str]]:
        """Arestas `(dependência, dependente)` na ordem topológica."""
        return [(dep, name) for name in self._order for dep in self._deps[name]]

    def ancestors(self, names: Iterable[str]) -> Set[str]:
        out: Set[str] = set()
        stack = [d for n in names for d in self._deps[n]]
        while stack:
            node = stack.pop()
            if node not in out:
                out.add(node)
                stack.extend(self._deps[node])
        return out

    def descendants(self, name: str) -> Set[str]:
        out: Set[str] = set()
        stack = list(self._dependents[name])
        while stack:
            node = stack.pop()
            if node not in out:
                out.add(node)
                stack.extend(self._dependents[node])
        return out

    def subset(self, names: Optional[Iterable[str]] = None) -> List[str]:
        """Ordem topológica restrita aos `names` e seus ancestrais."""
        if names is None:
            return self.order
        wanted = list(names)
        unknown = [n for n in wanted if n not in self._targets]
        if unknown:
            raise KeyError(f"Unknown targets: {', '.join(unknown)}")
        keep = set(wanted) | self.ancestors(wanted)
        return [n for n in self._order if n in keep]
