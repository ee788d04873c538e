# src/branchflow/core/run_context.py
"""
RunContext — Contexto canônico de execução do Branchflow.

O RunContext acompanha uma única run do scheduler e é o meio explícito de:
- identificar a execução (run_id, created_at)
- carregar a configuração efetiva
- registrar logs estruturados de execução (eventos por target)
- coletar warnings não fatais associados a targets
- referenciar o Manifest da run (quando houver)

Princípios fundamentais:
- Isolamento por execução (cada run possui seu próprio contexto)
- Nenhum estado global de sessão: o store é passado explicitamente ao
  scheduler, e não guardado aqui
- Eventos são registrados apenas pela thread coordenadora do scheduler
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from branchflow.core.config.settings import LOG_LEVELS


def new_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ") + "-" + uuid.uuid4().hex[:8]


@dataclass
class RunContext:
    """
    Contexto de execução compartilhado de uma run.

    Campos canônicos:
    - run_id: identificador único da execução
    - created_at: timestamp UTC de criação do contexto
    - config: configuração efetiva (defaults + overrides)
    - meta: metadados livres (ex.: caminho do store, origem da run)
    - manifest: RunManifest da execução, se a rastreabilidade estiver ativa
    - warnings: warnings por target
    - events: log estruturado de eventos
    """

    run_id: str
    created_at: datetime
    config: Dict[str, Any]
    meta: Dict[str, Any] = field(default_factory=dict)
    manifest: Any = None

    warnings: Dict[str, List[str]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def create(cls, config: Dict[str, Any], **meta: Any) -> "RunContext":
        return cls(
            run_id=new_run_id(),
            created_at=datetime.now(timezone.utc),
            config=config,
            meta=dict(meta),
        )

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def _min_level(self) -> str:
        engine_cfg = (self.config or {}).get("engine", {}) or {}
        level = str(engine_cfg.get("log_level", "INFO")).upper()
        return level if level in LOG_LEVELS else "INFO"

    def log(self, *, target: Optional[str], level: str, message: str, **extra: Any) -> None:
        level = level.upper()
        if level in LOG_LEVELS and LOG_LEVELS.index(level) < LOG_LEVELS.index(self._min_level()):
            return
        event = {
            "run_id": self.run_id,
            "target": target,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        self.events.append(event)

    def add_warning(self, *, target: str, message: str) -> None:
        if target not in self.warnings:
            self.warnings[target] = []
        self.warnings[target].append(message)
