# src/branchflow/core/engine/scheduler.py
"""
Scheduler de execução do Branchflow.

O Scheduler percorre o PlanGraph em ordem de dependências e decide, nó a
nó, entre reutilizar o valor em cache ou executar o comando:

    fingerprint presente no store  → CACHED (nada é executado)
    fingerprint ausente            → executa, persiste e marca como current

Targets dinâmicos são avaliados em duas fases: a expansão (na thread
coordenadora, assim que o upstream terminou) produz os sub-targets, que
são então agendados como nós comuns. O target pai termina quando todos os
seus sub-targets terminam.

Decisões arquiteturais:
    - Todo estado da run pertence à thread coordenadora; workers apenas
      executam o comando, serializam e gravam a chave do próprio nó
    - Um nó só começa depois que suas dependências gravaram valor e
      fingerprint no store (leitura sempre após a escrita)
    - `workers == 1` executa tudo inline, em ordem topológica determinística
    - Targets com `hpc_eligible=False` sempre rodam na thread coordenadora
    - Falhas são por nó: nada é persistido, descendentes são pulados
      (SKIPPED); com `fail_fast`, nós ainda não iniciados são CANCELED
    - IntegrityError aborta a run e é propagada ao chamador

Limites explícitos:
    - Não faz retry (a próxima run recomputa o que continuar desatualizado)
    - Não interpreta o conteúdo dos comandos
"""

from __future__ import annotations

import heapq
import json
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from branchflow.core.config.settings import EngineSettings
from branchflow.core.dynamic import BranchesInput, BranchInput, DynamicExpander, SubTarget, ValueInput
from branchflow.core.dynamic.aggregator import Aggregator
from branchflow.core.errors import computation_error, exception_to_payload, upstream_failure
from branchflow.core.exceptions import BranchflowException, ComputationError, DynamicShapeMismatchError
from branchflow.core.fingerprint import Fingerprinter
from branchflow.core.plan.graph import PlanGraph
from branchflow.core.plan.types import Target, TargetFormat
from branchflow.core.run_context import RunContext
from branchflow.core.traceability import manifest as mf
from branchflow.persistence import ContentStore, deserialize, files_unchanged, serialize

from .results import NodeResult, NodeStatus, RunResult


_OK = (NodeStatus.BUILT, NodeStatus.CACHED)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


@dataclass
class _Job:
    key: str
    target: Target
    fingerprint: str
    recipe: List[Any]
    kwargs: Dict[str, Any] = field(default_factory=dict)
    parent: Optional[str] = None
    index: Optional[int] = None
    grouping_key: Any = None


@dataclass
class _Outcome:
    status: NodeStatus
    seconds: float = 0.0
    bytes: Optional[int] = None
    error: Optional[BranchflowException] = None


@dataclass
class _Expansion:
    subtargets: List[SubTarget]
    pending: int
    statuses: Dict[str, NodeStatus] = field(default_factory=dict)
    seconds: float = 0.0


def _execute(store: ContentStore, job: _Job) -> _Outcome:
    """Executa um nó (em worker ou inline). Falhas do comando não persistem nada."""
    started = time.perf_counter()
    try:
        value = job.target.command(**job.kwargs)
        data = serialize(value, job.target.format)
    except Exception as exc:
        return _Outcome(
            status=NodeStatus.FAILED,
            seconds=time.perf_counter() - started,
            error=computation_error(target=job.key, exc=exc),
        )
    entry = store.put(job.fingerprint, data, job.target.format.value, job.recipe)
    return _Outcome(status=NodeStatus.BUILT, seconds=time.perf_counter() - started, bytes=entry.bytes)


class Scheduler:
    """Executa (`run`) ou inspeciona (`outdated`) um plano contra um store."""

    def __init__(
        self,
        graph: PlanGraph,
        ctx: RunContext,
        store: ContentStore,
        settings: Optional[EngineSettings] = None,
        *,
        fingerprinter: Optional[Fingerprinter] = None,
    ):
        self.graph = graph
        self.ctx = ctx
        self.store = store
        self.settings = settings or EngineSettings.from_config(ctx.config)
        self.fingerprinter = fingerprinter or Fingerprinter()
        self.expander = DynamicExpander(self.fingerprinter)
        self._reset()

    def _reset(self) -> None:
        self._fps: Dict[str, str] = {}
        self._branch_fps: Dict[str, List[str]] = {}
        self._values: Dict[str, Any] = {}
        self._status: Dict[str, NodeStatus] = {}
        self._results: Dict[str, NodeResult] = {}
        self._expansions: Dict[str, _Expansion] = {}
        self._waiting: Dict[str, int] = {}
        self._ready: List[Tuple[int, str]] = []
        self._inflight: Dict[Future, _Job] = {}
        self._executor: Optional[ThreadPoolExecutor] = None
        self._aborted = False

    # ------------------------------------------------------------------
    # Valores e entradas
    # ------------------------------------------------------------------
    def _load(self, fingerprint: str, fmt: TargetFormat) -> Any:
        if fingerprint not in self._values:
            self._values[fingerprint] = deserialize(self.store.get(fingerprint), fmt)
        return self._values[fingerprint]

    def _value(self, name: str) -> Any:
        target = self.graph.target(name)
        if target.is_dynamic:
            return Aggregator.aggregate([self._load(fp, target.format) for fp in self._branch_fps[name]])
        return self._load(self._fps[name], target.format)

    def _input(self, name: str) -> BranchInput:
        target = self.graph.target(name)
        if target.is_dynamic:
            fps = self._branch_fps[name]
            return BranchesInput(name, fps, lambda i: self._load(fps[i], target.format))
        return ValueInput(name, self._value(name))

    def _arguments(self, target: Target, deps: Iterable[str], skip: Iterable[str] = ()) -> Dict[str, Any]:
        skip = set(skip)
        return {d: self._value(d) for d in deps if d not in skip and target.accepts(d)}

    def _is_current(self, fingerprint: str, fmt: TargetFormat) -> bool:
        if not self.store.exists(fingerprint):
            return False
        if fmt is TargetFormat.FILE:
            return files_unchanged(self.store.get(fingerprint))
        return True

    # ------------------------------------------------------------------
    # Registro (resultado + log + manifest)
    # ------------------------------------------------------------------
    def _trace_start(self, key: str, kind: str) -> None:
        self.ctx.log(target=key, level="DEBUG", message="started", kind=kind)
        if self.ctx.manifest is not None:
            mf.target_started(self.ctx.manifest, target=key, kind=kind, ts=_now())

    def _settle(
        self,
        key: str,
        status: NodeStatus,
        *,
        summary: str,
        fingerprint: Optional[str] = None,
        parent: Optional[str] = None,
        index: Optional[int] = None,
        seconds: float = 0.0,
        error: Optional[BranchflowException] = None,
    ) -> None:
        payload: Dict[str, Any] = {}
        if error is not None:
            payload["error"] = exception_to_payload(error).to_dict()

        self._results[key] = NodeResult(
            name=key,
            status=status,
            summary=summary,
            fingerprint=fingerprint,
            parent=parent,
            index=index,
            seconds=seconds,
            payload=payload,
        )

        level = {
            NodeStatus.BUILT: "INFO",
            NodeStatus.CACHED: "DEBUG",
            NodeStatus.FAILED: "ERROR",
        }.get(status, "WARNING")
        self.ctx.log(target=key, level=level, message=summary, status=status.value, fingerprint=fingerprint)

        manifest = self.ctx.manifest
        if manifest is not None:
            ts = _now()
            if status in _OK:
                mf.target_finished(
                    manifest,
                    target=key,
                    ts=ts,
                    result={"status": status.value, "summary": summary, "fingerprint": fingerprint},
                )
            elif status is NodeStatus.FAILED:
                mf.target_failed(manifest, target=key, ts=ts, error=payload.get("error", {}))
            else:
                mf.target_skipped(manifest, target=key, ts=ts, status=status.value, reason=summary)

        if status is NodeStatus.SKIPPED:
            self.ctx.add_warning(target=key, message=summary)
        if status is NodeStatus.FAILED and self.settings.fail_fast:
            self._abort()

    def _abort(self) -> None:
        if not self._aborted:
            self._aborted = True
            self.ctx.log(target=None, level="WARNING", message="fail_fast: aborting run")

    def _finish(self, name: str, status: NodeStatus) -> None:
        self._status[name] = status
        for child in self.graph.dependents(name):
            if child in self._waiting:
                self._waiting[child] -= 1
                if self._waiting[child] == 0:
                    heapq.heappush(self._ready, (self.graph.position(child), child))

    def _fail(self, name: str, exc: BranchflowException) -> None:
        self._settle(name, NodeStatus.FAILED, summary=exc.message, error=exc)
        self._finish(name, NodeStatus.FAILED)

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------
    def run(self, names: Optional[Iterable[str]] = None) -> RunResult:
        """
        Constrói os targets (todos, ou `names` e seus ancestrais).

        Raises:
            KeyError: nome desconhecido em `names`.
            IntegrityError: colisão de fingerprint ou entrada corrompida.
        """
        self._reset()
        order = self.graph.subset(names)
        selected = set(order)
        for name in order:
            self._waiting[name] = sum(1 for d in self.graph.dependencies(name) if d in selected)
            if self._waiting[name] == 0:
                heapq.heappush(self._ready, (self.graph.position(name), name))

        workers = self.settings.workers
        self.ctx.log(
            target=None,
            level="INFO",
            message="run started",
            targets=len(order),
            workers=workers,
            fail_fast=self.settings.fail_fast,
        )

        with self.store:
            if workers > 1:
                self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="branchflow")
            try:
                self._loop()
            finally:
                if self._executor is not None:
                    self._executor.shutdown(wait=True, cancel_futures=True)
                    self._executor = None

        self._cancel_remaining(order)
        result = RunResult(run_id=self.ctx.run_id, nodes=dict(self._results))
        self.ctx.log(target=None, level="INFO", message="run finished", **result.summary()["counts"])
        return result

    def _loop(self) -> None:
        while self._ready or self._inflight:
            while self._ready and not self._aborted:
                _, name = heapq.heappop(self._ready)
                self._start(name)

            if self._aborted:
                self._ready.clear()
                for fut in self._inflight:
                    fut.cancel()

            if not self._inflight:
                continue

            done, _ = wait(list(self._inflight), return_when=FIRST_COMPLETED)
            for fut in done:
                job = self._inflight.pop(fut)
                outcome = _Outcome(status=NodeStatus.CANCELED) if fut.cancelled() else fut.result()
                self._complete(job, outcome)

    def _submit(self, job: _Job) -> None:
        if self._executor is None or not job.target.hpc_eligible:
            self._complete(job, _execute(self.store, job))
        else:
            self._inflight[self._executor.submit(_execute, self.store, job)] = job

    def _start(self, name: str) -> None:
        target = self.graph.target(name)
        deps = self.graph.dependencies(name)

        bad = [d for d in deps if self._status.get(d) not in _OK]
        if bad:
            exc = upstream_failure(target=name, failed_dependencies=bad)
            self._settle(name, NodeStatus.SKIPPED, summary="skipped due to failed dependency", error=exc)
            self._finish(name, NodeStatus.SKIPPED)
            return

        self._trace_start(name, "dynamic" if target.is_dynamic else "static")
        if target.is_dynamic:
            self._expand(target, deps)
        else:
            self._start_static(target, deps)

    def _start_static(self, target: Target, deps: List[str]) -> None:
        try:
            fp, recipe = self.fingerprinter.fingerprint(target, {d: self._fps[d] for d in deps})
        except FileNotFoundError as exc:
            self._fail(target.name, computation_error(target=target.name, exc=exc))
            return

        job = _Job(key=target.name, target=target, fingerprint=fp, recipe=recipe)
        if self._is_current(fp, target.format):
            self._complete(job, _Outcome(status=NodeStatus.CACHED))
            return
        job.kwargs = self._arguments(target, deps)
        self._submit(job)

    def _expand(self, target: Target, deps: List[str]) -> None:
        name = target.name
        pattern_names = set(target.pattern.names())
        try:
            inputs = {v: self._input(v) for v in target.pattern.names()}
            subs = self.expander.expand(
                target, inputs, {d: self._fps[d] for d in deps if d not in pattern_names}
            )
        except DynamicShapeMismatchError as exc:
            self._fail(name, exc)
            return
        except FileNotFoundError as exc:
            self._fail(name, computation_error(target=name, exc=exc))
            return

        self.ctx.log(
            target=name,
            level="INFO",
            message=f"expanded into {len(subs)} sub-target(s)",
            pattern=target.pattern.describe(),
            subtargets=len(subs),
        )
        self._expansions[name] = _Expansion(subtargets=subs, pending=len(subs))
        if not subs:
            self._finish_dynamic(name)
            return

        shared: Optional[Dict[str, Any]] = None
        for sub in subs:
            if self._aborted:
                break
            job = _Job(
                key=sub.key,
                target=target,
                fingerprint=sub.fingerprint,
                recipe=sub.recipe,
                parent=name,
                index=sub.index,
                grouping_key=sub.grouping_key,
            )
            self._trace_start(sub.key, "subtarget")
            if self._is_current(sub.fingerprint, target.format):
                self._complete(job, _Outcome(status=NodeStatus.CACHED))
                continue
            if shared is None:
                shared = self._arguments(target, deps, skip=pattern_names)
            job.kwargs = dict(shared)
            job.kwargs.update(self.expander.arguments(target, sub, inputs))
            self._submit(job)

    def _pointer(self, job: _Job, *, seconds: Optional[float], nbytes: Optional[int]) -> Dict[str, Any]:
        return {
            "fingerprint": job.fingerprint,
            "format": job.target.format.value,
            "kind": "subtarget" if job.parent is not None else "static",
            "parent": job.parent,
            "index": job.index,
            "grouping_key": _json_safe(job.grouping_key),
            "seconds": seconds,
            "bytes": nbytes,
            "updated_at": _now().isoformat(),
        }

    def _complete(self, job: _Job, outcome: _Outcome) -> None:
        status = outcome.status
        if status is NodeStatus.BUILT:
            self.store.set_current(job.key, self._pointer(job, seconds=outcome.seconds, nbytes=outcome.bytes))
            summary = f"built in {outcome.seconds:.3f}s"
        elif status is NodeStatus.CACHED:
            previous = self.store.current(job.key)
            if previous is None or previous.get("fingerprint") != job.fingerprint:
                entry = self.store.entry(job.fingerprint)
                self.store.set_current(
                    job.key, self._pointer(job, seconds=None, nbytes=entry.bytes if entry else None)
                )
            summary = "cached"
        elif status is NodeStatus.FAILED:
            summary = outcome.error.message
        else:
            summary = "canceled: run aborted"

        self._settle(
            job.key,
            status,
            summary=summary,
            fingerprint=job.fingerprint if status in _OK else None,
            parent=job.parent,
            index=job.index,
            seconds=outcome.seconds,
            error=outcome.error,
        )

        if job.parent is None:
            if status in _OK:
                self._fps[job.key] = job.fingerprint
            self._finish(job.key, status)
        else:
            expansion = self._expansions[job.parent]
            expansion.statuses[job.key] = status
            expansion.seconds += outcome.seconds
            expansion.pending -= 1
            if expansion.pending == 0:
                self._finish_dynamic(job.parent)

    def _finish_dynamic(self, name: str) -> None:
        target = self.graph.target(name)
        expansion = self._expansions[name]

        failed = [k for k, s in expansion.statuses.items() if s is NodeStatus.FAILED]
        if failed:
            exc = ComputationError(
                message=f"Target '{name}' failed: {len(failed)} sub-target(s) failed",
                details={"target": name, "failed_subtargets": failed},
                hint="Corrija os sub-targets listados; os demais permanecem em cache.",
            )
            self._fail(name, exc)
            return
        if any(s is NodeStatus.CANCELED for s in expansion.statuses.values()):
            self._settle(name, NodeStatus.CANCELED, summary="canceled: run aborted")
            self._finish(name, NodeStatus.CANCELED)
            return

        fps = [s.fingerprint for s in expansion.subtargets]
        children = [s.key for s in expansion.subtargets]
        fingerprint = Fingerprinter.dynamic(fps)

        previous = self.store.current(name)
        for key in self.expander.pruned_keys(self.store.list_subtarget_keys(name), expansion.subtargets):
            self.store.drop_current(key)

        changed = (
            previous is None
            or previous.get("fingerprint") != fingerprint
            or previous.get("children") != children
        )
        if changed:
            self.store.set_current(
                name,
                {
                    "fingerprint": fingerprint,
                    "format": target.format.value,
                    "kind": "dynamic",
                    "parent": None,
                    "index": None,
                    "pattern": target.pattern.describe(),
                    "children": children,
                    "child_fingerprints": fps,
                    "seconds": expansion.seconds,
                    "bytes": None,
                    "updated_at": _now().isoformat(),
                },
            )

        rebuilt = any(s is NodeStatus.BUILT for s in expansion.statuses.values())
        status = NodeStatus.BUILT if rebuilt or changed else NodeStatus.CACHED
        self._fps[name] = fingerprint
        self._branch_fps[name] = fps
        self._settle(
            name,
            status,
            summary=f"{status.value}: {len(fps)} sub-target(s)",
            fingerprint=fingerprint,
            seconds=expansion.seconds,
        )
        self._finish(name, status)

    def _cancel_remaining(self, order: List[str]) -> None:
        # apenas após abort: nós que não chegaram a iniciar ou terminar
        for name, expansion in self._expansions.items():
            if name in self._status:
                continue
            for sub in expansion.subtargets:
                if sub.key not in self._results:
                    self._settle(
                        sub.key,
                        NodeStatus.CANCELED,
                        summary="canceled: run aborted",
                        parent=name,
                        index=sub.index,
                    )
            failed = any(s is NodeStatus.FAILED for s in expansion.statuses.values())
            status = NodeStatus.FAILED if failed else NodeStatus.CANCELED
            self._settle(name, status, summary=f"{status.value}: run aborted during expansion")
            self._status[name] = status

        for name in order:
            if name not in self._status:
                self._settle(name, NodeStatus.CANCELED, summary="canceled: run aborted")
                self._status[name] = NodeStatus.CANCELED

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------
    def outdated(self, names: Optional[Iterable[str]] = None) -> Set[str]:
        """
        Targets que seriam (re)construídos por `run(names)`.

        Um target está desatualizado quando ele (ou algum sub-target) não
        possui entrada no store para o fingerprint atual, ou quando alguma
        dependência está desatualizada. Nada é executado nem gravado.
        """
        self._reset()
        stale: Set[str] = set()
        with self.store:
            for name in self.graph.subset(names):
                deps = self.graph.dependencies(name)
                if any(d in stale for d in deps) or not self._target_is_current(self.graph.target(name), deps):
                    stale.add(name)
        return stale

    def _target_is_current(self, target: Target, deps: List[str]) -> bool:
        try:
            if target.is_dynamic:
                pattern_names = set(target.pattern.names())
                inputs = {v: self._input(v) for v in target.pattern.names()}
                subs = self.expander.expand(
                    target, inputs, {d: self._fps[d] for d in deps if d not in pattern_names}
                )
            else:
                fp, _ = self.fingerprinter.fingerprint(target, {d: self._fps[d] for d in deps})
        except (DynamicShapeMismatchError, FileNotFoundError):
            return False

        if not target.is_dynamic:
            if not self._is_current(fp, target.format):
                return False
            self._fps[target.name] = fp
            return True

        if not all(self._is_current(s.fingerprint, target.format) for s in subs):
            return False
        fps = [s.fingerprint for s in subs]
        self._branch_fps[target.name] = fps
        self._fps[target.name] = Fingerprinter.dynamic(fps)
        return True
