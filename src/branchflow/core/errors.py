"""
Branchflow — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros reportados por uma run.
Erros são artefatos de domínio e fazem parte do resumo da execução,
devendo ser:

- explícitos
- serializáveis
- rastreáveis (sempre associados a um target ou sub-target)

Nenhum stack trace cru é exposto ao operador.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from .exceptions import (
    BranchflowException,
    ComputationError,
    CyclicPlanError,
    DuplicateTargetError,
    DynamicShapeMismatchError,
    EngineConfigurationError,
    IntegrityError,
    PlanDefinitionError,
    UpstreamFailure,
)


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ErrorPayload:
    """
    Payload canônico de erro do Branchflow.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador (onde corrigir)
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

PLAN_CYCLE = "PLAN_CYCLE"
PLAN_DUPLICATE_TARGET = "PLAN_DUPLICATE_TARGET"
PLAN_DEFINITION_ERROR = "PLAN_DEFINITION_ERROR"

DYNAMIC_SHAPE_MISMATCH = "DYNAMIC_SHAPE_MISMATCH"
UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
COMPUTATION_ERROR = "COMPUTATION_ERROR"
STORE_INTEGRITY_ERROR = "STORE_INTEGRITY_ERROR"

ENGINE_EXECUTION_ERROR = "ENGINE_EXECUTION_ERROR"
ENGINE_CONFIGURATION_ERROR = "ENGINE_CONFIGURATION_ERROR"

_CODES = {
    CyclicPlanError: PLAN_CYCLE,
    DuplicateTargetError: PLAN_DUPLICATE_TARGET,
    PlanDefinitionError: PLAN_DEFINITION_ERROR,
    DynamicShapeMismatchError: DYNAMIC_SHAPE_MISMATCH,
    UpstreamFailure: UPSTREAM_FAILURE,
    ComputationError: COMPUTATION_ERROR,
    IntegrityError: STORE_INTEGRITY_ERROR,
    EngineConfigurationError: ENGINE_CONFIGURATION_ERROR,
}


def exception_to_payload(exc: BaseException) -> ErrorPayload:
    """Converte exceções em ErrorPayload (serializável, acionável).

    Regras:
    - BranchflowException: já vem com message/details/hint; o código vem do catálogo.
    - Outras exceções: encapsuladas como ENGINE_EXECUTION_ERROR sem stack trace.
    """
    if isinstance(exc, BranchflowException):
        code = next(
            (c for cls, c in _CODES.items() if isinstance(exc, cls)),
            ENGINE_EXECUTION_ERROR,
        )
        return ErrorPayload(
            type=code,
            message=exc.message or "Erro de execução",
            details=dict(exc.details or {}),
            hint=exc.hint,
        )

    return ErrorPayload(
        type=ENGINE_EXECUTION_ERROR,
        message=str(exc) or "Erro inesperado durante execução",
        details={"exception_class": exc.__class__.__name__},
        hint="Verifique a configuração do plano e do store",
    )


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def upstream_failure(*, target: str, failed_dependencies: List[str]) -> UpstreamFailure:
    return UpstreamFailure(
        message=f"Target '{target}' skipped: upstream failed",
        details={"target": target, "failed_dependencies": sorted(failed_dependencies)},
        hint="Corrija os targets que falharam e execute novamente; resultados em cache são preservados.",
    )


def computation_error(*, target: str, exc: BaseException) -> ComputationError:
    return ComputationError(
        message=f"Target '{target}' failed: {exc.__class__.__name__}: {exc}",
        details={
            "target": target,
            "exc_type": exc.__class__.__name__,
            "exc_message": str(exc),
        },
        hint="Verifique o comando do target; nenhum valor foi persistido para esta execução.",
    )
