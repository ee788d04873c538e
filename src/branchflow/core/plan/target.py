# src/branchflow/core/plan/target.py
"""
Builder de targets e análise estática de referências.

A inferência de dependências acontece uma única vez, na construção do
target: os nomes de parâmetros do comando (via `inspect.signature`) mais
`depends_on` mais as variáveis do padrão dinâmico formam a lista explícita
de referências. O scheduler consome apenas essa lista.

Exemplo:

    plan = [
        target("dataset", lambda: [10, 20, 30, 40]),
        target("continent", lambda: ["A", "A", "B", "B"]),
        target("model", fit, pattern=combine("dataset", by="continent")),
    ]
"""

from __future__ import annotations

import inspect
import keyword
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

from branchflow.core.exceptions import PlanDefinitionError

from .types import DynamicSpec, PatternKind, Target, TargetFormat


def _signature(command: Callable[..., Any]) -> Tuple[Tuple[str, ...], bool]:
    """Retorna (parâmetros nomeáveis, aceita **kwargs)."""
    try:
        sig = inspect.signature(command)
    except (TypeError, ValueError):
        return (), True

    names: List[str] = []
    var_keyword = False
    for param in sig.parameters.values():
        if param.kind in (param.POSITIONAL_OR_KEYWORD, param.KEYWORD_ONLY):
            names.append(param.name)
        elif param.kind == param.VAR_KEYWORD:
            var_keyword = True
    return tuple(names), var_keyword


def infer_references(command: Callable[..., Any]) -> Tuple[str, ...]:
    """Nomes que o comando pode receber por nome (candidatos a dependência)."""
    names, _ = _signature(command)
    return names


def _check_name(name: Any, what: str) -> str:
    if not isinstance(name, str) or not name.isidentifier() or keyword.iskeyword(name):
        raise PlanDefinitionError(
            message=f"{what} deve ser um identificador Python válido",
            details={"name": name},
            hint="Nomes de targets são usados como nomes de argumentos dos comandos.",
        )
    return name


def _unique(names: Iterable[str]) -> Tuple[str, ...]:
    seen = set()
    out: List[str] = []
    for n in names:
        if n not in seen:
            seen.add(n)
            out.append(n)
    return tuple(out)


# ---------------------------------------------------------------------------
# Padrões dinâmicos
# ---------------------------------------------------------------------------

def _spec(kind: PatternKind, variables: Tuple[str, ...], by: Optional[str] = None) -> DynamicSpec:
    if not variables:
        raise PlanDefinitionError(
            message=f"{kind.value}() requer ao menos uma variável",
            details={"pattern": kind.value},
        )
    for v in variables:
        _check_name(v, "Variável de padrão")
    if len(set(variables)) != len(variables):
        raise PlanDefinitionError(
            message=f"{kind.value}() com variáveis repetidas",
            details={"variables": list(variables)},
        )
    if by is not None:
        _check_name(by, "Variável de grupo")
        if by in variables:
            raise PlanDefinitionError(
                message="A variável de grupo não pode ser também combinada",
                details={"variables": list(variables), "by": by},
            )
    return DynamicSpec(kind=kind, variables=tuple(variables), by=by)


def map_(*variables: str) -> DynamicSpec:
    """Um sub-target por posição; todas as variáveis devem ter o mesmo tamanho."""
    return _spec(PatternKind.MAP, variables)


def cross(*variables: str) -> DynamicSpec:
    """Um sub-target por combinação; a primeira variável varia mais devagar."""
    return _spec(PatternKind.CROSS, variables)


def combine(*variables: str, by: Optional[str] = None) -> DynamicSpec:
    """Agrega elementos em um sub-target (ou um por valor distinto de `by`)."""
    return _spec(PatternKind.COMBINE, variables, by=by)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def target(
    name: str,
    command: Callable[..., Any],
    *,
    pattern: Optional[DynamicSpec] = None,
    format: Union[TargetFormat, str] = TargetFormat.DEFAULT,
    hpc_eligible: bool = True,
    depends_on: Optional[Iterable[str]] = None,
    file_inputs: Optional[Iterable[Union[str, Path]]] = None,
) -> Target:
    """
    Declara um target.

    Args:
        name: nome único do target (identificador Python).
        command: callable; seus parâmetros nomeiam as dependências.
        pattern: `map_(...)`, `cross(...)` ou `combine(..., by=...)`.
        format: formato de persistência (`TargetFormat` ou seu valor textual).
        hpc_eligible: False mantém a execução na thread coordenadora.
        depends_on: referências extras (ex.: comando com **kwargs, ou
            dependências apenas de ordem).
        file_inputs: arquivos cujo conteúdo é rastreado.

    Raises:
        PlanDefinitionError: declaração inválida.
    """
    _check_name(name, "Nome do target")

    if not callable(command):
        raise PlanDefinitionError(
            message=f"O comando do target '{name}' deve ser callable",
            details={"target": name, "received": type(command).__name__},
        )

    if pattern is not None and not isinstance(pattern, DynamicSpec):
        raise PlanDefinitionError(
            message=f"Padrão inválido para o target '{name}'",
            details={"target": name, "received": type(pattern).__name__},
            hint="Use map_(), cross() ou combine().",
        )

    try:
        fmt = TargetFormat(format)
    except ValueError:
        raise PlanDefinitionError(
            message=f"Formato desconhecido para o target '{name}'",
            details={"target": name, "format": str(format)},
        ) from None

    params, var_keyword = _signature(command)

    extra = [_check_name(d, "Dependência") for d in (depends_on or [])]
    pattern_names = list(pattern.names()) if pattern is not None else []

    if pattern is not None and not var_keyword:
        missing = [v for v in pattern.variables if v not in params]
        if missing:
            raise PlanDefinitionError(
                message=f"O comando do target '{name}' não aceita as variáveis do padrão",
                details={"target": name, "missing": missing, "pattern": pattern.describe()},
                hint="Declare um parâmetro por variável de map/cross/combine.",
            )

    return Target(
        name=name,
        command=command,
        references=_unique(list(params) + extra + pattern_names),
        parameters=None if var_keyword else params,
        pattern=pattern,
        format=fmt,
        hpc_eligible=bool(hpc_eligible),
        file_inputs=tuple(str(p) for p in (file_inputs or [])),
    )
