# tests/core/engine/test_scheduler_parallel.py
"""
Testes de execução paralela do Scheduler (`workers > 1`).

Os testes asseguram que:
- sub-targets independentes executam de fato em paralelo
- o resultado não depende do número de workers
- targets com `hpc_eligible=False` rodam na thread coordenadora
- dependências sempre terminam antes dos dependentes
"""

import threading

import pytest

from branchflow.core.engine import Scheduler
from branchflow.core.plan import PlanGraph, combine, map_, target
from branchflow.persistence import MemoryContentStore, deserialize
from tests import _tracking as tracking


def pair():
    return ["left", "right"]


def rendezvous(pair):
    # bloqueia até os dois ramos estarem rodando ao mesmo tempo
    tracking.BARRIER.wait()
    return pair.upper()


def numbers():
    return list(range(12))


def cube(numbers):
    tracking.THREADS[f"cube-{numbers}"] = threading.current_thread().name
    tracking.FINISHED.append(f"cube-{numbers}")
    return numbers ** 3


def total(cube):
    tracking.FINISHED.append("total")
    return sum(cube)


def local_only(numbers):
    tracking.THREADS["local_only"] = threading.current_thread().name
    return len(numbers)


def _run(plan, ctx, store, workers):
    ctx.config["engine"]["workers"] = workers
    return Scheduler(PlanGraph(plan), ctx, store).run()


def _stored(store, key):
    pointer = store.current(key)
    return deserialize(store.get(pointer["fingerprint"]), pointer["format"])


def test_branches_run_concurrently(dummy_ctx, memory_store):
    plan = [target("pair", pair), target("shout", rendezvous, pattern=map_("pair"))]

    result = _run(plan, dummy_ctx, memory_store, workers=2)

    assert result.ok
    assert [_stored(memory_store, k) for k in ("shout[1]", "shout[2]")] == ["LEFT", "RIGHT"]


@pytest.mark.parametrize("workers", [1, 2, 8])
def test_results_do_not_depend_on_workers(dummy_ctx, workers):
    store = MemoryContentStore()
    plan = [
        target("numbers", numbers),
        target("cube", cube, pattern=map_("numbers")),
        target("total", total),
        target("grouped", lambda cube: sorted(cube), pattern=combine("cube")),
    ]

    result = _run(plan, dummy_ctx, store, workers)

    assert result.ok
    assert _stored(store, "total") == sum(i ** 3 for i in range(12))
    assert _stored(store, "grouped[1]") == [i ** 3 for i in range(12)]
    assert [_stored(store, f"cube[{i + 1}]") for i in range(12)] == [i ** 3 for i in range(12)]
    assert tracking.FINISHED[-1] == "total"


def test_fingerprints_do_not_depend_on_workers(dummy_ctx):
    plan = [target("numbers", numbers), target("cube", cube, pattern=map_("numbers"))]

    sequential = _run(plan, dummy_ctx, MemoryContentStore(), workers=1)
    parallel = _run(plan, dummy_ctx, MemoryContentStore(), workers=4)

    assert sequential["cube"].fingerprint == parallel["cube"].fingerprint


def test_hpc_ineligible_targets_stay_on_the_coordinator(dummy_ctx, memory_store):
    plan = [
        target("numbers", numbers),
        target("cube", cube, pattern=map_("numbers")),
        target("local_only", local_only, hpc_eligible=False),
    ]

    result = _run(plan, dummy_ctx, memory_store, workers=4)

    assert result.ok
    assert tracking.THREADS["local_only"] == threading.current_thread().name
    assert all(name.startswith("branchflow") for key, name in tracking.THREADS.items() if key.startswith("cube-"))
