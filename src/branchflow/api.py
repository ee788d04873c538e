# src/branchflow/api.py
"""
API pública do Branchflow.

Funções de alto nível sobre um plano (lista de targets ou PlanGraph) e um
store explícito:

    - make              → constrói o plano (ou parte dele)
    - outdated          → targets que seriam reconstruídos (dry run)
    - read              → valor de um target, ou de sub-targets por índice
    - dependency_graph  → nós + arestas para visualização
    - meta              → metadados dos ponteiros "current" em um DataFrame
    - invalidate        → força a reconstrução de targets
    - prune             → remove ponteiros e objetos não referenciados

Decisões arquiteturais:
    - O store é sempre passado explicitamente (sem store global de sessão)
    - `make` grava o Manifest da run ao lado de um FileContentStore
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

import pandas as pd

from branchflow._version import __version__
from branchflow.core.config import EngineSettings, compute_config_hash, load_config
from branchflow.core.dynamic import Aggregator
from branchflow.core.engine import RunResult, Scheduler
from branchflow.core.fingerprint import canonical_json, hash_command
from branchflow.core.plan import PlanGraph, Target, TargetFormat
from branchflow.core.run_context import RunContext
from branchflow.core.traceability import create_manifest, save_manifest
from branchflow.persistence import ContentStore, deserialize


Plan = Union[PlanGraph, Iterable[Target]]

META_COLUMNS = [
    "name",
    "kind",
    "parent",
    "index",
    "fingerprint",
    "format",
    "seconds",
    "bytes",
    "updated_at",
]


def _graph(targets: Plan) -> PlanGraph:
    return targets if isinstance(targets, PlanGraph) else PlanGraph(targets)


def _context(config: Optional[Dict[str, Any]], store: ContentStore) -> RunContext:
    return RunContext.create(load_config(overrides=config), store=type(store).__name__)


def plan_hash(graph: PlanGraph) -> str:
    """Hash canônico da declaração do plano (comandos, referências e opções)."""
    parts = [
        [t.name, hash_command(t), list(t.references), t.hpc_eligible, list(t.file_inputs)]
        for t in graph.targets
    ]
    return hashlib.sha256(canonical_json(parts).encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Execução
# ---------------------------------------------------------------------------

def make(
    targets: Plan,
    *,
    store: ContentStore,
    config: Optional[Dict[str, Any]] = None,
    names: Optional[Iterable[str]] = None,
    ctx: Optional[RunContext] = None,
) -> RunResult:
    """
    Constrói o plano contra `store`.

    Args:
        targets: lista de targets (ou PlanGraph já validado).
        store: ContentStore da sessão.
        config: overrides aplicados sobre `DEFAULT_CONFIG` (ignorado com `ctx`).
        names: constrói apenas estes targets e seus ancestrais.
        ctx: RunContext pronto (config, eventos, manifest).

    Raises:
        CyclicPlanError, DuplicateTargetError, PlanDefinitionError: plano inválido.
        EngineConfigurationError: opções de engine inválidas.
        IntegrityError: colisão de fingerprint ou entrada corrompida.
    """
    graph = _graph(targets)
    if ctx is None:
        ctx = _context(config, store)
    settings = EngineSettings.from_config(ctx.config)

    if ctx.manifest is None:
        ctx.manifest = create_manifest(
            run_id=ctx.run_id,
            started_at=ctx.created_at,
            branchflow_version=__version__,
            config_hash=compute_config_hash(ctx.config),
            plan_hash=plan_hash(graph),
        )

    result = Scheduler(graph, ctx, store, settings).run(names)

    manifest_path = getattr(store, "manifest_path", None)
    if manifest_path is not None:
        save_manifest(ctx.manifest, manifest_path)
    return result


def outdated(
    targets: Plan,
    *,
    store: ContentStore,
    config: Optional[Dict[str, Any]] = None,
    names: Optional[Iterable[str]] = None,
) -> Set[str]:
    """Nomes dos targets que `make` reconstruiria; nada é executado."""
    graph = _graph(targets)
    ctx = _context(config, store)
    return Scheduler(graph, ctx, store).outdated(names)


# ---------------------------------------------------------------------------
# Leitura
# ---------------------------------------------------------------------------

def _indices(indices: Union[int, Sequence[int]]) -> List[int]:
    if isinstance(indices, int) and not isinstance(indices, bool):
        return [indices]
    return [int(i) for i in indices]


def read(name: str, indices: Union[int, Sequence[int], None] = None, *, store: ContentStore) -> Any:
    """
    Lê o valor atual de um target.

    - Target estático: o valor.
    - Target dinâmico sem `indices`: o agregado dos sub-targets (Aggregator).
    - Target dinâmico com `indices` (1-based): lista com os valores pedidos.

    Raises:
        KeyError: target sem valor no store.
        IndexError: índice fora da faixa de sub-targets.
        ValueError: `indices` em um target estático.
    """
    record = store.current(name)
    if record is None:
        raise KeyError(f"Target '{name}' has no value in the store")
    fmt = TargetFormat(record.get("format", TargetFormat.DEFAULT.value))

    if record.get("kind") != "dynamic":
        if indices is not None:
            raise ValueError(f"Target '{name}' is not dynamic; indices are not supported")
        return deserialize(store.get(record["fingerprint"]), fmt)

    fps = list(record.get("child_fingerprints") or [])
    if indices is None:
        return Aggregator.aggregate([deserialize(store.get(fp), fmt) for fp in fps])

    out = []
    for i in _indices(indices):
        if not 1 <= i <= len(fps):
            raise IndexError(f"Target '{name}' has {len(fps)} sub-target(s); index {i} is out of range")
        out.append(deserialize(store.get(fps[i - 1]), fmt))
    return out


# ---------------------------------------------------------------------------
# Introspecção
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DependencyGraph:
    """Nós e arestas `(origem, destino)` para um renderizador externo."""

    nodes: List[Dict[str, Any]] = field(default_factory=list)
    edges: List[Tuple[str, str]] = field(default_factory=list)

    def to_frames(self) -> Tuple[pd.DataFrame, pd.DataFrame]:
        nodes = pd.DataFrame(self.nodes, columns=["name", "kind", "parent", "index", "pattern", "format", "outdated"])
        edges = pd.DataFrame(self.edges, columns=["source", "target"])
        return nodes, edges


def dependency_graph(
    targets: Plan,
    *,
    store: Optional[ContentStore] = None,
    collapse: bool = True,
) -> DependencyGraph:
    """
    Grafo de dependências do plano.

    Com `store`, cada nó indica se está desatualizado. Com `collapse=False`,
    os sub-targets registrados no store aparecem como nós ligados ao pai.
    """
    graph = _graph(targets)
    stale = outdated(graph, store=store) if store is not None else None

    nodes: List[Dict[str, Any]] = []
    edges: List[Tuple[str, str]] = list(graph.edges())
    for name in graph.order:
        t = graph.target(name)
        nodes.append(
            {
                "name": name,
                "kind": "dynamic" if t.is_dynamic else "static",
                "parent": None,
                "index": None,
                "pattern": t.pattern.describe() if t.pattern is not None else None,
                "format": t.format.value,
                "outdated": (name in stale) if stale is not None else None,
            }
        )
        if collapse or store is None or not t.is_dynamic:
            continue
        for i, key in enumerate(store.list_subtarget_keys(name), start=1):
            nodes.append(
                {
                    "name": key,
                    "kind": "subtarget",
                    "parent": name,
                    "index": i,
                    "pattern": None,
                    "format": t.format.value,
                    "outdated": (name in stale) if stale is not None else None,
                }
            )
            edges.append((name, key))

    return DependencyGraph(nodes=nodes, edges=edges)


def meta(store: ContentStore) -> pd.DataFrame:
    """Um registro por ponteiro "current" (targets e sub-targets), por nome."""
    rows = []
    for name in store.current_names():
        record = store.current(name) or {}
        row = {c: record.get(c) for c in META_COLUMNS}
        row["name"] = name
        rows.append(row)
    return pd.DataFrame(rows, columns=META_COLUMNS)


# ---------------------------------------------------------------------------
# Manutenção do store
# ---------------------------------------------------------------------------

def _live_fingerprints(store: ContentStore) -> Set[str]:
    """Fingerprints referenciados por algum ponteiro "current"."""
    live: Set[str] = set()
    for key in store.current_names():
        record = store.current(key) or {}
        live.add(record.get("fingerprint"))
        live.update(record.get("child_fingerprints") or [])
    return live


def invalidate(names: Union[str, Iterable[str]], *, store: ContentStore) -> List[str]:
    """
    Força a reconstrução dos targets na próxima run.

    Remove os ponteiros do target (e de seus sub-targets) e os objetos que
    eles referenciam. Um objeto ainda referenciado por outro ponteiro (mesma
    receita em outro target) é mantido, e o target invalidado volta a apontar
    para ele na próxima run. Retorna as chaves removidas.
    """
    if isinstance(names, str):
        names = [names]
    dropped: List[str] = []
    released: Set[str] = set()
    with store:
        for name in names:
            record = store.current(name)
            if record is None:
                continue
            for key in list(record.get("children") or []) + [name]:
                rec = store.current(key)
                if rec is None:
                    continue
                released.add(rec["fingerprint"])
                released.update(rec.get("child_fingerprints") or [])
                store.drop_current(key)
                dropped.append(key)

        live = _live_fingerprints(store)
        for fp in sorted(released - live):
            store.delete(fp)
    return dropped


def prune(targets: Plan, *, store: ContentStore) -> Dict[str, List[str]]:
    """
    Remove ponteiros de targets que não estão mais no plano (ou sub-targets
    que o pai não lista mais) e apaga objetos que nenhum ponteiro referencia.
    """
    graph = _graph(targets)
    dropped: List[str] = []
    with store:
        for key in store.current_names():
            record = store.current(key) or {}
            parent = record.get("parent")
            owner = parent or key
            orphan = owner not in graph
            if parent is not None and not orphan:
                parent_record = store.current(parent)
                orphan = parent_record is not None and key not in (parent_record.get("children") or [])
            if orphan:
                store.drop_current(key)
                dropped.append(key)

        live = _live_fingerprints(store)
        deleted = [k for k in store.keys() if k not in live]
        for k in deleted:
            store.delete(k)

    return {"pointers": dropped, "objects": deleted}


__all__ = [
    "DependencyGraph",
    "dependency_graph",
    "invalidate",
    "make",
    "meta",
    "outdated",
    "plan_hash",
    "prune",
    "read",
]
