# src/branchflow/core/traceability/manifest.py
"""
Manifest v1 — rastreabilidade de runs do Branchflow.

Registro de uma run, gravado em `manifest.json` ao lado do FileContentStore:
    - metadados da run (run_id, started_at, versão)
    - hashes das entradas (configuração e plano)
    - estado por nó (target ou sub-target)
    - Event Log: um evento por transição de nó

Regras:
    - Eventos entram apenas por `add_event` e pelos helpers `target_*`
    - A ordem do Event Log reflete a ordem real observada pela thread
      coordenadora do scheduler
    - O Manifest é serializável e reconstruível (round-trip JSON)

Tipos de evento emitidos pelo scheduler:
    - target_started, target_finished, target_failed, target_skipped

Limites explícitos:
    - Não executa targets
    - Não decide status: apenas registra o que o scheduler informa
    - Não migra manifests de versões anteriores
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


def _utc(dt: datetime) -> datetime:
    """Timestamps sem timezone são assumidos como UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _utc(dt).isoformat()


def _ms_between(start: datetime, end: datetime) -> int:
    return max(0, int((_utc(end) - _utc(start)).total_seconds() * 1000))


@dataclass
class RunManifest:
    """
    Registro de uma run.

    Campos:
        - run: run_id, started_at, branchflow_version
        - inputs: config_hash, plan_hash
        - targets: estado por chave de nó
        - events: Event Log ordenado
    """

    run: Dict[str, Any]
    inputs: Dict[str, Any]
    targets: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run": dict(self.run),
            "inputs": dict(self.inputs),
            "targets": {k: dict(v) for k, v in self.targets.items()},
            "events": [dict(e) for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunManifest":
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            targets={k: dict(v) for k, v in (data.get("targets", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )


def create_manifest(
    *,
    run_id: str,
    started_at: datetime,
    branchflow_version: str,
    config_hash: str,
    plan_hash: str,
) -> RunManifest:
    """
    Cria o Manifest inicial de uma run.

    O Event Log inicia vazio; eventos só entram por `add_event` e pelos
    helpers `target_*`.
    """
    return RunManifest(
        run={
            "run_id": run_id,
            "started_at": _iso(started_at),
            "branchflow_version": branchflow_version,
        },
        inputs={
            "config_hash": config_hash,
            "plan_hash": plan_hash,
        },
    )


def add_event(
    manifest: RunManifest,
    *,
    event_type: str,
    ts: datetime,
    target: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    ev: Dict[str, Any] = {"event_type": event_type, "timestamp": _iso(ts)}
    if target is not None:
        ev["target"] = target
    if payload is not None:
        ev["payload"] = payload
    manifest.events.append(ev)


def target_started(manifest: RunManifest, *, target: str, kind: str, ts: datetime) -> None:
    """Marca o nó como `running` e registra `target_started`."""
    state = manifest.targets.setdefault(target, {"target": target})
    state.update({"kind": kind, "status": "running", "started_at": _iso(ts)})
    add_event(manifest, event_type="target_started", ts=ts, target=target, payload={"kind": kind})


def target_finished(manifest: RunManifest, *, target: str, ts: datetime, result: Dict[str, Any]) -> None:
    """
    Registra a conclusão de um nó (built ou cached).

    A duração é calculada a partir de `started_at` quando presente.
    """
    state = manifest.targets.setdefault(target, {"target": target})
    started = state.get("started_at")
    try:
        started_dt = datetime.fromisoformat(started) if started else ts
    except ValueError:
        started_dt = ts

    status = result.get("status", "built")
    state.update(
        {
            "status": status,
            "finished_at": _iso(ts),
            "duration_ms": _ms_between(started_dt, ts),
            "summary": result.get("summary"),
            "fingerprint": result.get("fingerprint"),
        }
    )
    add_event(
        manifest,
        event_type="target_finished",
        ts=ts,
        target=target,
        payload={"status": status, "duration_ms": state["duration_ms"]},
    )


def target_failed(manifest: RunManifest, *, target: str, ts: datetime, error: Dict[str, Any]) -> None:
    state = manifest.targets.setdefault(target, {"target": target})
    state.update({"status": "failed", "finished_at": _iso(ts), "error": error})
    add_event(manifest, event_type="target_failed", ts=ts, target=target, payload={"error": error})


def target_skipped(
    manifest: RunManifest,
    *,
    target: str,
    ts: datetime,
    status: str = "skipped",
    reason: Optional[str] = None,
) -> None:
    """Registra um nó não executado (pulado por upstream ou cancelado)."""
    state = manifest.targets.setdefault(target, {"target": target})
    state.update({"status": status, "finished_at": _iso(ts), "reason": reason})
    add_event(
        manifest,
        event_type="target_skipped",
        ts=ts,
        target=target,
        payload={"status": status, "reason": reason},
    )


def save_manifest(manifest: RunManifest, path: Union[str, Path]) -> None:
    """Persiste o Manifest em JSON determinístico (chaves ordenadas)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(manifest.to_dict(), ensure_ascii=False, indent=2, sort_keys=True),
        encoding="utf-8",
    )


def load_manifest(path: Union[str, Path]) -> RunManifest:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return RunManifest.from_dict(data)
