"""
Branchflow — Canonical Exceptions (v1)

Este módulo define as exceções tipadas do Branchflow.

Objetivo:
- Permitir que planner, expander, store e scheduler levantem exceções
  semânticas tipadas
- Facilitar o mapeamento determinístico para ErrorPayload
- Evitar ValueError/RuntimeError genéricos em guardrails críticos

Regras:
- Exceções carregam apenas dados estruturados (serializáveis) em `details`.
- A mensagem é curta e humana; diagnóstico fica em `details`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True, eq=False)
class BranchflowException(Exception):
    """Base class para exceções internas do Branchflow.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover
        return self.message


# ---------------------------------------------------------------------------
# Plano (estrutura estática)
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class CyclicPlanError(BranchflowException):
    """O grafo estático de targets contém um ciclo. Fatal, antes de qualquer execução."""


@dataclass(frozen=True, eq=False)
class DuplicateTargetError(BranchflowException):
    """Dois targets declarados com o mesmo nome. Fatal, antes de qualquer execução."""


@dataclass(frozen=True, eq=False)
class PlanDefinitionError(BranchflowException):
    """Declaração de target inválida (nome, comando ou padrão dinâmico)."""


# ---------------------------------------------------------------------------
# Expansão dinâmica / execução
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class DynamicShapeMismatchError(BranchflowException):
    """Entradas de `map()` (ou `combine(..., by=...)`) discordam na contagem de elementos."""


@dataclass(frozen=True, eq=False)
class UpstreamFailure(BranchflowException):
    """Uma dependência falhou ou foi pulada; o nó é pulado (sem retry)."""


@dataclass(frozen=True, eq=False)
class ComputationError(BranchflowException):
    """A computação opaca do usuário levantou erro dentro do comando do target."""


@dataclass(frozen=True, eq=False)
class IntegrityError(BranchflowException):
    """Colisão de fingerprint ou entrada corrompida no store. Fatal, sem recuperação silenciosa."""


# ---------------------------------------------------------------------------
# Engine / Configuração
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class EngineConfigurationError(BranchflowException):
    """Configuração inválida ou inconsistente para execução."""
