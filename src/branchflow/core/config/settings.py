# src/branchflow/core/config/settings.py
"""Opções validadas do scheduler, extraídas da configuração efetiva."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict

from branchflow.core.exceptions import EngineConfigurationError


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class EngineSettings:
    """
    Opções de execução do Scheduler.

    Campos:
    - workers: tamanho do pool (1 = execução sequencial e determinística)
    - fail_fast: True aborta a run na primeira falha; False continua
      ramos independentes e pula apenas descendentes do nó que falhou
    - log_level: nível mínimo dos eventos registrados no RunContext
    """

    workers: int = 1
    fail_fast: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_config(cls, config: Dict[str, Any] | None) -> "EngineSettings":
        engine_cfg = (config or {}).get("engine", {}) or {}

        workers = engine_cfg.get("workers")
        if workers is None:
            workers = os.cpu_count() or 1
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            raise EngineConfigurationError(
                message="engine.workers deve ser um inteiro >= 1",
                details={"workers": workers},
                hint="Use null para o paralelismo disponível ou 1 para execução sequencial.",
            )

        fail_fast = engine_cfg.get("fail_fast", False)
        if not isinstance(fail_fast, bool):
            raise EngineConfigurationError(
                message="engine.fail_fast deve ser booleano",
                details={"fail_fast": fail_fast},
            )

        log_level = str(engine_cfg.get("log_level", "INFO")).upper()
        if log_level not in LOG_LEVELS:
            raise EngineConfigurationError(
                message="engine.log_level inválido",
                details={"log_level": log_level, "allowed": list(LOG_LEVELS)},
            )

        return cls(workers=workers, fail_fast=fail_fast, log_level=log_level)
