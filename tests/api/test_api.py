# tests/api/test_api.py
"""
Testes da API pública (`branchflow.api`).

Os testes asseguram que:
- `make` executa o plano e grava o Manifest ao lado de um FileContentStore
- `read` devolve o valor, o agregado ou sub-targets por índice (1-based)
- `dependency_graph` expõe nós e arestas (com ou sem sub-targets)
- `meta` lista um registro por ponteiro "current"
- `invalidate` força a reconstrução e `prune` limpa o que não é referenciado
"""

import pandas as pd
import pytest

from branchflow import (
    FileContentStore,
    MemoryContentStore,
    NodeStatus,
    dependency_graph,
    invalidate,
    make,
    map_,
    meta,
    outdated,
    prune,
    read,
    target,
)
from branchflow.api import META_COLUMNS, plan_hash
from branchflow.core.plan import PlanGraph
from branchflow.core.traceability import load_manifest
from tests import _tracking as tracking


CONFIG = {"engine": {"workers": 1}}


def numbers():
    tracking.CALLS["numbers"] += 1
    return [1, 2, 3]


def square(numbers):
    tracking.CALLS[f"square-{numbers}"] += 1
    return numbers * numbers


def total(square):
    tracking.CALLS["total"] += 1
    return sum(square)


def load_rows():
    return [1, 2, 3]


def _plan():
    return [
        target("numbers", numbers),
        target("square", square, pattern=map_("numbers")),
        target("total", total),
    ]


# ---------------------------------------------------------------------------
# make / outdated
# ---------------------------------------------------------------------------

def test_make_builds_and_is_idempotent(memory_store):
    first = make(_plan(), store=memory_store, config=CONFIG)
    second = make(_plan(), store=memory_store, config=CONFIG)

    assert first.ok
    assert second.built() == []
    assert second["total"].status is NodeStatus.CACHED
    assert tracking.CALLS["total"] == 1


def test_make_with_names(memory_store):
    result = make(_plan(), store=memory_store, config=CONFIG, names=["numbers"])

    assert list(result.nodes) == ["numbers"]


def test_make_accepts_a_prebuilt_graph(memory_store):
    assert make(PlanGraph(_plan()), store=memory_store, config=CONFIG).ok


def test_make_writes_manifest_next_to_file_store(tmp_path):
    store = FileContentStore(tmp_path / "_branchflow")

    result = make(_plan(), store=store, config=CONFIG)

    manifest = load_manifest(store.manifest_path)
    assert manifest.run["run_id"] == result.run_id
    assert manifest.inputs["plan_hash"] == plan_hash(PlanGraph(_plan()))
    assert manifest.targets["total"]["status"] == "built"
    assert manifest.targets["square[2]"]["kind"] == "subtarget"


def test_make_uses_a_given_context(dummy_ctx, memory_store):
    result = make(_plan(), store=memory_store, ctx=dummy_ctx)

    assert result.run_id == "run-test-001"
    assert dummy_ctx.manifest is not None
    assert dummy_ctx.events


def test_outdated_before_and_after_make(memory_store):
    assert outdated(_plan(), store=memory_store, config=CONFIG) == {"numbers", "square", "total"}

    make(_plan(), store=memory_store, config=CONFIG)

    assert outdated(_plan(), store=memory_store, config=CONFIG) == set()
    assert outdated(_plan(), store=memory_store, config=CONFIG) == set()


def test_plan_hash_changes_with_declaration():
    base = plan_hash(PlanGraph(_plan()))
    changed = plan_hash(PlanGraph(_plan() + [target("extra", lambda total: total)]))

    assert base == plan_hash(PlanGraph(_plan()))
    assert base != changed


# ---------------------------------------------------------------------------
# read
# ---------------------------------------------------------------------------

def test_read_static_and_dynamic(memory_store):
    make(_plan(), store=memory_store, config=CONFIG)

    assert read("numbers", store=memory_store) == [1, 2, 3]
    assert read("total", store=memory_store) == 14
    assert read("square", store=memory_store) == [1, 4, 9]
    assert read("square", 2, store=memory_store) == [4]
    assert read("square", [3, 1], store=memory_store) == [9, 1]


def test_read_keeps_tuple_results_whole(memory_store):
    plan = [
        target("x", lambda: [1, 2]),
        target("pairs", lambda x: (x, x * 10), pattern=map_("x")),
    ]
    make(plan, store=memory_store, config=CONFIG)

    assert read("pairs", store=memory_store) == [(1, 10), (2, 20)]
    assert read("pairs", 2, store=memory_store) == [(2, 20)]


def test_read_errors(memory_store):
    make(_plan(), store=memory_store, config=CONFIG)

    with pytest.raises(KeyError):
        read("missing", store=memory_store)
    with pytest.raises(IndexError):
        read("square", 4, store=memory_store)
    with pytest.raises(IndexError):
        read("square", 0, store=memory_store)
    with pytest.raises(ValueError):
        read("total", 1, store=memory_store)


def test_read_table_target(memory_store):
    plan = [target("frame", lambda: pd.DataFrame({"a": [1, 2]}), format="table")]
    make(plan, store=memory_store, config=CONFIG)

    out = read("frame", store=memory_store)
    assert isinstance(out, pd.DataFrame)
    assert out["a"].tolist() == [1, 2]


# ---------------------------------------------------------------------------
# dependency_graph / meta
# ---------------------------------------------------------------------------

def test_dependency_graph_collapsed():
    graph = dependency_graph(_plan())

    assert [n["name"] for n in graph.nodes] == ["numbers", "square", "total"]
    assert graph.edges == [("numbers", "square"), ("square", "total")]
    assert graph.nodes[1]["pattern"] == "map(numbers)"
    assert all(n["outdated"] is None for n in graph.nodes)


def test_dependency_graph_expanded_with_store(memory_store):
    make(_plan(), store=memory_store, config=CONFIG)

    graph = dependency_graph(_plan(), store=memory_store, collapse=False)

    names = [n["name"] for n in graph.nodes]
    assert names == ["numbers", "square", "square[1]", "square[2]", "square[3]", "total"]
    assert ("square", "square[2]") in graph.edges
    assert not any(n["outdated"] for n in graph.nodes)

    nodes, edges = graph.to_frames()
    assert list(nodes.columns) == ["name", "kind", "parent", "index", "pattern", "format", "outdated"]
    assert list(edges.columns) == ["source", "target"]
    assert nodes.loc[nodes["name"] == "square[3]", "kind"].item() == "subtarget"


def test_dependency_graph_marks_outdated_nodes(memory_store):
    graph = dependency_graph(_plan(), store=memory_store)

    assert all(n["outdated"] for n in graph.nodes)


def test_meta_has_one_row_per_pointer(memory_store):
    assert list(meta(memory_store).columns) == META_COLUMNS
    assert meta(memory_store).empty

    make(_plan(), store=memory_store, config=CONFIG)
    df = meta(memory_store)

    assert df["name"].tolist() == ["numbers", "square", "square[1]", "square[2]", "square[3]", "total"]
    assert df.set_index("name").loc["square[2]", "parent"] == "square"
    assert df.set_index("name").loc["square", "kind"] == "dynamic"


# ---------------------------------------------------------------------------
# invalidate / prune
# ---------------------------------------------------------------------------

def test_invalidate_forces_rebuild(memory_store):
    make(_plan(), store=memory_store, config=CONFIG)
    tracking.CALLS.clear()

    dropped = invalidate("square", store=memory_store)

    assert dropped == ["square[1]", "square[2]", "square[3]", "square"]
    assert outdated(_plan(), store=memory_store, config=CONFIG) == {"square", "total"}

    result = make(_plan(), store=memory_store, config=CONFIG)
    assert result["numbers"].status is NodeStatus.CACHED
    assert result["square[1]"].status is NodeStatus.BUILT
    assert tracking.CALLS["square-1"] == 1
    # total depende apenas de fingerprints; o valor continua em cache
    assert result["total"].status is NodeStatus.CACHED


def test_invalidate_keeps_objects_shared_with_other_targets(memory_store):
    plan = [target("x", load_rows), target("y", load_rows)]
    make(plan, store=memory_store, config=CONFIG)
    assert memory_store.current("x")["fingerprint"] == memory_store.current("y")["fingerprint"]

    assert invalidate("x", store=memory_store) == ["x"]

    assert read("y", store=memory_store) == [1, 2, 3]
    result = make(plan, store=memory_store, config=CONFIG)
    assert result["x"].status is NodeStatus.CACHED
    assert read("x", store=memory_store) == [1, 2, 3]


def test_invalidate_unknown_name_is_a_no_op(memory_store):
    assert invalidate(["nope"], store=memory_store) == []


def test_prune_drops_undeclared_targets_and_objects(memory_store):
    make(_plan() + [target("extra", lambda total: total + 1)], store=memory_store, config=CONFIG)
    extra_fp = memory_store.current("extra")["fingerprint"]

    removed = prune(_plan(), store=memory_store)

    assert removed["pointers"] == ["extra"]
    assert extra_fp in removed["objects"]
    assert not memory_store.exists(extra_fp)
    assert read("total", store=memory_store) == 14


def test_prune_keeps_everything_referenced(memory_store):
    make(_plan(), store=memory_store, config=CONFIG)

    assert prune(_plan(), store=memory_store) == {"pointers": [], "objects": []}


def test_prune_drops_stale_subtarget_pointers(memory_store):
    make(_plan(), store=memory_store, config=CONFIG)
    memory_store.set_current("square[9]", {"fingerprint": "gone", "parent": "square", "index": 9})

    removed = prune(_plan(), store=memory_store)

    assert removed["pointers"] == ["square[9]"]


def test_session_without_file_store_has_no_manifest_file(tmp_path):
    store = MemoryContentStore()
    make(_plan(), store=store, config=CONFIG)

    assert not hasattr(store, "manifest_path")
