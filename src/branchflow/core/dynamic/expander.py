# src/branchflow/core/dynamic/expander.py
"""
DynamicExpander — materialização de sub-targets em tempo de execução.

Um target declarado com `map`, `cross` ou `combine` só conhece seu número
de sub-targets depois que as entradas de agrupamento foram construídas.
O expander recebe essas entradas já realizadas e produz a lista ordenada
de sub-targets, cada um com o fingerprint da sua fatia.

Semântica:
    - map(v1..vn): todas as entradas com M elementos → M sub-targets;
      o sub-target i recebe o elemento i de cada variável
    - cross(v1..vn): produto cartesiano; a primeira variável varia mais devagar
    - combine(v1..vn): um sub-target com todos os elementos, na ordem
      (valores estáticos preservam a estrutura; sub-targets são concatenados)
    - combine(v1..vn, by=g): um sub-target por valor distinto de g, na ordem
      da primeira aparição; v_j e g alinhados posição a posição

Entradas podem ser valores de targets estáticos (`ValueInput`) ou os
sub-targets de um target dinâmico anterior (`BranchesInput`), o que permite
encadear estágios dinâmicos.

Limites explícitos:
    - Não executa comandos
    - Não acessa o store (valores de sub-targets chegam por `loader`)
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from branchflow.core.exceptions import DynamicShapeMismatchError, PlanDefinitionError
from branchflow.core.fingerprint import Fingerprinter, hash_value
from branchflow.core.plan.types import PatternKind, Target

from .aggregator import Aggregator
from .slicing import element_at, element_count, take_elements


def subtarget_key(parent: str, index: int) -> str:
    """Chave de um sub-target (1-based); nunca colide com nomes de targets."""
    return f"{parent}[{index}]"


# ---------------------------------------------------------------------------
# Entradas de agrupamento
# ---------------------------------------------------------------------------

class BranchInput(ABC):
    """Entrada de agrupamento realizada: contagem, digest e elemento por posição."""

    name: str

    @abstractmethod
    def count(self) -> int: ...

    @abstractmethod
    def digest(self, position: int) -> str: ...

    @abstractmethod
    def element(self, position: int) -> Any: ...

    @abstractmethod
    def take(self, positions: Sequence[int]) -> Any:
        """Membros de um grupo de `combine()`."""


class ValueInput(BranchInput):
    """Valor de um target estático, fatiado por `element_at`."""

    def __init__(self, name: str, value: Any):
        self.name = name
        self._value = value
        self._count = element_count(value)
        self._digests: Dict[int, str] = {}

    def count(self) -> int:
        return self._count

    def digest(self, position: int) -> str:
        d = self._digests.get(position)
        if d is None:
            d = hash_value(self.element(position))
            self._digests[position] = d
        return d

    def element(self, position: int) -> Any:
        return element_at(self._value, position)

    def take(self, positions: Sequence[int]) -> Any:
        return take_elements(self._value, positions)


class BranchesInput(BranchInput):
    """Sub-targets de um target dinâmico: o elemento i é o valor do sub-target i."""

    def __init__(self, name: str, fingerprints: Sequence[str], loader: Callable[[int], Any]):
        self.name = name
        self._fingerprints = list(fingerprints)
        self._loader = loader

    def count(self) -> int:
        return len(self._fingerprints)

    def digest(self, position: int) -> str:
        return self._fingerprints[position]

    def element(self, position: int) -> Any:
        return self._loader(position)

    def take(self, positions: Sequence[int]) -> Any:
        # valores de sub-targets são concatenados
        return Aggregator.aggregate([self._loader(p) for p in positions])


# ---------------------------------------------------------------------------
# Sub-targets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SubTarget:
    """
    Unidade produzida pela expansão de um target dinâmico.

    - index: posição 1-based no target pai
    - positions: posições (0-based) de cada variável do padrão atribuídas
    - grouping_key: valor do grupo (apenas combine com `by`)
    """

    parent: str
    index: int
    positions: Mapping[str, Tuple[int, ...]]
    slice_digest: str
    fingerprint: str
    recipe: List[Any] = field(default_factory=list, repr=False)
    grouping_key: Any = None

    @property
    def key(self) -> str:
        return subtarget_key(self.parent, self.index)


class DynamicExpander:
    """Expande targets dinâmicos em sub-targets com fingerprint por fatia."""

    def __init__(self, fingerprinter: Optional[Fingerprinter] = None):
        self.fingerprinter = fingerprinter or Fingerprinter()

    # ------------------------------------------------------------------
    # Expansão
    # ------------------------------------------------------------------
    def expand(
        self,
        target: Target,
        inputs: Mapping[str, BranchInput],
        dependencies: Mapping[str, str],
    ) -> List[SubTarget]:
        """
        Materializa os sub-targets de `target`.

        Args:
            target: target dinâmico.
            inputs: entradas realizadas para cada variável do padrão (e `by`).
            dependencies: fingerprints das referências que não fazem parte do
                padrão (entram inteiras em todos os sub-targets).

        Raises:
            DynamicShapeMismatchError: contagens incompatíveis.
        """
        spec = target.pattern
        if spec is None:
            raise PlanDefinitionError(
                message=f"Target '{target.name}' não é dinâmico",
                details={"target": target.name},
            )
        missing = [v for v in spec.names() if v not in inputs]
        if missing:
            raise PlanDefinitionError(
                message=f"Entradas ausentes para expandir '{target.name}'",
                details={"target": target.name, "missing": missing},
            )

        if spec.kind is PatternKind.MAP:
            slices = self._map_slices(target, inputs)
        elif spec.kind is PatternKind.CROSS:
            slices = self._cross_slices(target, inputs)
        else:
            slices = self._combine_slices(target, inputs)

        subtargets: List[SubTarget] = []
        for i, (positions, grouping_key) in enumerate(slices, start=1):
            digest = self._slice_digest(target, inputs, positions, grouping_key)
            fp, recipe = self.fingerprinter.fingerprint(target, dependencies, digest)
            subtargets.append(
                SubTarget(
                    parent=target.name,
                    index=i,
                    positions=positions,
                    slice_digest=digest,
                    fingerprint=fp,
                    recipe=recipe,
                    grouping_key=grouping_key,
                )
            )
        return subtargets

    def _counts(self, target: Target, inputs: Mapping[str, BranchInput]) -> Dict[str, int]:
        return {v: inputs[v].count() for v in target.pattern.names()}

    def _map_slices(self, target: Target, inputs: Mapping[str, BranchInput]):
        counts = self._counts(target, inputs)
        if len(set(counts.values())) > 1:
            raise DynamicShapeMismatchError(
                message=f"map() inputs of '{target.name}' disagree on element count",
                details={"target": target.name, "counts": counts},
                hint="Todas as variáveis de map() devem ter o mesmo número de elementos.",
            )
        m = next(iter(counts.values()), 0)
        variables = target.pattern.variables
        return [({v: (i,) for v in variables}, None) for i in range(m)]

    def _cross_slices(self, target: Target, inputs: Mapping[str, BranchInput]):
        variables = target.pattern.variables
        ranges = [range(inputs[v].count()) for v in variables]
        return [
            ({v: (p,) for v, p in zip(variables, combo)}, None)
            for combo in itertools.product(*ranges)
        ]

    def _combine_slices(self, target: Target, inputs: Mapping[str, BranchInput]):
        spec = target.pattern
        if spec.by is None:
            return [({v: tuple(range(inputs[v].count())) for v in spec.variables}, None)]

        counts = self._counts(target, inputs)
        if len(set(counts.values())) > 1:
            raise DynamicShapeMismatchError(
                message=f"combine() inputs of '{target.name}' are not aligned with '{spec.by}'",
                details={"target": target.name, "counts": counts},
                hint="A variável de grupo deve ter um elemento por elemento combinado.",
            )
        by = inputs[spec.by]
        keys = [by.element(p) for p in range(by.count())]
        return [
            ({v: tuple(positions) for v in spec.variables}, key)
            for key, positions in Aggregator.partition(keys)
        ]

    def _slice_digest(
        self,
        target: Target,
        inputs: Mapping[str, BranchInput],
        positions: Mapping[str, Tuple[int, ...]],
        grouping_key: Any,
    ) -> str:
        spec = target.pattern
        parts: List[Any] = [
            spec.kind.value,
            [[v, [inputs[v].digest(p) for p in positions[v]]] for v in spec.variables],
        ]
        if spec.by is not None:
            parts.append(["by", spec.by, hash_value(grouping_key)])
        return self.fingerprinter.slice_digest(parts)

    # ------------------------------------------------------------------
    # Argumentos e re-expansão
    # ------------------------------------------------------------------
    @staticmethod
    def arguments(target: Target, sub: SubTarget, inputs: Mapping[str, BranchInput]) -> Dict[str, Any]:
        """Argumentos do padrão para um sub-target (demais dependências entram inteiras)."""
        spec = target.pattern
        kwargs: Dict[str, Any] = {}
        for v in spec.variables:
            if not target.accepts(v):
                continue
            positions = sub.positions[v]
            if spec.kind is PatternKind.COMBINE:
                kwargs[v] = inputs[v].take(positions)
            else:
                kwargs[v] = inputs[v].element(positions[0])
        if spec.by is not None and target.accepts(spec.by):
            kwargs[spec.by] = sub.grouping_key
        return kwargs

    @staticmethod
    def pruned_keys(previous: Sequence[str], subtargets: Sequence[SubTarget]) -> List[str]:
        """Chaves de sub-targets da expansão anterior que deixaram de existir."""
        current = {s.key for s in subtargets}
        return [k for k in previous if k not in current]
