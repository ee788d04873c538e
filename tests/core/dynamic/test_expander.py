# tests/core/dynamic/test_expander.py
"""
Testes do DynamicExpander.

Os testes asseguram que:
- map gera um sub-target por elemento e exige contagens iguais
- cross gera o produto cartesiano (primeira variável varia mais devagar)
- combine gera um único sub-target, ou um por grupo com `by`
- o fingerprint de um sub-target depende apenas da sua fatia
- entradas de estágios dinâmicos anteriores (BranchesInput) encadeiam
"""

import pandas as pd
import pytest

from branchflow.core.dynamic import BranchesInput, DynamicExpander, ValueInput, subtarget_key
from branchflow.core.exceptions import DynamicShapeMismatchError, PlanDefinitionError
from branchflow.core.plan import combine, cross, map_, target


def paste(x, y):
    return f"{x}{y}"


def pair(a, b):
    return (a, b)


def total(values, group):
    return sum(values)


def _inputs(**values):
    return {name: ValueInput(name, value) for name, value in values.items()}


def test_subtarget_key_is_one_based_and_bracketed():
    assert subtarget_key("model", 1) == "model[1]"


def test_map_one_subtarget_per_element():
    t = target("z", paste, pattern=map_("x", "y"))
    inputs = _inputs(x=[1, 2], y=["a", "b"])

    subs = DynamicExpander().expand(t, inputs, {})

    assert [s.key for s in subs] == ["z[1]", "z[2]"]
    assert [DynamicExpander.arguments(t, s, inputs) for s in subs] == [
        {"x": 1, "y": "a"},
        {"x": 2, "y": "b"},
    ]
    assert subs[0].fingerprint != subs[1].fingerprint


def test_map_count_mismatch_raises():
    t = target("z", paste, pattern=map_("x", "y"))

    with pytest.raises(DynamicShapeMismatchError) as exc:
        DynamicExpander().expand(t, _inputs(x=[1, 2, 3], y=["a", "b"]), {})
    assert exc.value.details["counts"] == {"x": 3, "y": 2}


def test_map_over_empty_input_yields_no_subtargets():
    t = target("z", lambda x: x, pattern=map_("x"))
    assert DynamicExpander().expand(t, _inputs(x=[]), {}) == []


def test_cross_first_variable_varies_slowest():
    t = target("grid", pair, pattern=cross("a", "b"))
    inputs = _inputs(a=[1, 2], b=["x", "y", "z"])

    subs = DynamicExpander().expand(t, inputs, {})

    assert len(subs) == 6
    assert [tuple(DynamicExpander.arguments(t, s, inputs).values()) for s in subs] == [
        (1, "x"), (1, "y"), (1, "z"),
        (2, "x"), (2, "y"), (2, "z"),
    ]


def test_cross_with_empty_input_yields_no_subtargets():
    t = target("grid", pair, pattern=cross("a", "b"))
    assert DynamicExpander().expand(t, _inputs(a=[1, 2], b=[]), {}) == []


def test_combine_without_by_is_a_single_subtarget():
    t = target("all", lambda values: values, pattern=combine("values"))
    inputs = _inputs(values=[[1], [2, 3]])

    subs = DynamicExpander().expand(t, inputs, {})

    assert len(subs) == 1
    assert DynamicExpander.arguments(t, subs[0], inputs) == {"values": [[1], [2, 3]]}


def test_combine_by_groups_in_first_appearance_order():
    t = target("totals", total, pattern=combine("values", by="group"))
    inputs = _inputs(values=[10, 20, 30, 40], group=["B", "A", "B", "A"])

    subs = DynamicExpander().expand(t, inputs, {})

    assert [s.grouping_key for s in subs] == ["B", "A"]
    args = [DynamicExpander.arguments(t, s, inputs) for s in subs]
    assert args == [
        {"values": [10, 30], "group": "B"},
        {"values": [20, 40], "group": "A"},
    ]


def test_combine_by_keeps_list_elements_whole():
    t = target("members", total, pattern=combine("values", by="group"))
    inputs = _inputs(values=[[1], [2], [3]], group=["a", "a", "b"])

    subs = DynamicExpander().expand(t, inputs, {})

    assert [DynamicExpander.arguments(t, s, inputs)["values"] for s in subs] == [[[1], [2]], [[3]]]


def test_combine_over_upstream_branches_concatenates_their_values():
    t = target("joined", lambda parts: parts, pattern=combine("parts"))
    values = {0: [1, 2], 1: [3]}
    inputs = {"parts": BranchesInput("parts", ["fa", "fb"], values.__getitem__)}

    sub = DynamicExpander().expand(t, inputs, {})[0]

    assert DynamicExpander.arguments(t, sub, inputs) == {"parts": [1, 2, 3]}


def test_combine_by_over_dataframe_rows():
    df = pd.DataFrame({"continent": ["A", "A", "B"], "value": [1, 2, 3]})
    t = target("per", lambda rows, continent: rows, pattern=combine("rows", by="continent"))
    inputs = {"rows": ValueInput("rows", df), "continent": ValueInput("continent", df["continent"])}

    subs = DynamicExpander().expand(t, inputs, {})

    first = DynamicExpander.arguments(t, subs[0], inputs)
    assert first["continent"] == "A"
    assert first["rows"]["value"].tolist() == [1, 2]


def test_combine_by_misaligned_raises():
    t = target("totals", total, pattern=combine("values", by="group"))

    with pytest.raises(DynamicShapeMismatchError):
        DynamicExpander().expand(t, _inputs(values=[1, 2], group=["A"]), {})


def test_by_is_not_passed_when_command_does_not_accept_it():
    t = target("totals", lambda values: sum(values), pattern=combine("values", by="group"), depends_on=["group"])
    inputs = _inputs(values=[1, 2], group=["A", "A"])

    sub = DynamicExpander().expand(t, inputs, {})[0]
    assert DynamicExpander.arguments(t, sub, inputs) == {"values": [1, 2]}


def test_subtarget_fingerprint_depends_only_on_its_slice():
    t = target("z", lambda x: x * 2, pattern=map_("x"))
    expander = DynamicExpander()

    before = expander.expand(t, _inputs(x=[1, 2, 3]), {})
    after = expander.expand(t, _inputs(x=[1, 9, 3]), {})

    assert before[0].fingerprint == after[0].fingerprint
    assert before[1].fingerprint != after[1].fingerprint
    assert before[2].fingerprint == after[2].fingerprint


def test_shared_dependencies_enter_every_subtarget():
    t = target("z", lambda x, scale: x * scale, pattern=map_("x"))
    expander = DynamicExpander()

    one = expander.expand(t, _inputs(x=[1, 2]), {"scale": "fp-1"})
    two = expander.expand(t, _inputs(x=[1, 2]), {"scale": "fp-2"})

    assert all(a.fingerprint != b.fingerprint for a, b in zip(one, two))


def test_branches_input_chains_dynamic_stages():
    upstream_fps = ["fp-a", "fp-b"]
    values = ["A", "B"]
    loads = []

    def loader(position):
        loads.append(position)
        return values[position]

    t = target("w", lambda v: v.lower(), pattern=map_("v"))
    inputs = {"v": BranchesInput("v", upstream_fps, loader)}

    subs = DynamicExpander().expand(t, inputs, {})
    assert len(subs) == 2
    assert loads == []

    assert DynamicExpander.arguments(t, subs[1], inputs) == {"v": "B"}
    assert loads == [1]

    changed = DynamicExpander().expand(t, {"v": BranchesInput("v", ["fp-a", "fp-c"], loader)}, {})
    assert changed[0].fingerprint == subs[0].fingerprint
    assert changed[1].fingerprint != subs[1].fingerprint


def test_pruned_keys_lists_vanished_subtargets():
    t = target("z", lambda x: x, pattern=map_("x"))
    subs = DynamicExpander().expand(t, _inputs(x=[1, 2]), {})

    assert DynamicExpander.pruned_keys(["z[1]", "z[2]", "z[3]"], subs) == ["z[3]"]


def test_expand_rejects_static_target_and_missing_inputs():
    expander = DynamicExpander()
    with pytest.raises(PlanDefinitionError):
        expander.expand(target("s", lambda: 1), {}, {})
    with pytest.raises(PlanDefinitionError):
        expander.expand(target("z", lambda x: x, pattern=map_("x")), {}, {})
