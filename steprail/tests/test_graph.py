from __future__ import annotations

import pytest

from steprail.errors import DefinitionError
from steprail.graph.model import ScopeKey, StepGraph
from steprail.schema.models import LaneKind
from steprail.tests.builders import branch, loop, parallel, tool


def _sample_graph() -> StepGraph:
    return StepGraph(
        [
            tool("z", 3),
            tool("a", 0),
            branch("br", ["x > 10"], 1),
            tool("b1b", 1, parent_id="br", branch_condition_index=1),
            tool("b0", 0, parent_id="br", branch_condition_index=0),
            tool("b1", 0, parent_id="br", branch_condition_index=1),
            loop("lp", "iteration < 2", 2),
            tool("l1", 5, parent_id="lp"),
            tool("l0", 2, parent_id="lp"),
        ]
    )


def _ids(steps) -> list[str]:
    return [step.id for step in steps]


def test_scopes_are_ordered_by_list_index() -> None:
    graph = _sample_graph()

    assert _ids(graph.top_level_steps()) == ["a", "br", "lp", "z"]
    assert _ids(graph.children_of("lp")) == ["l0", "l1"]
    assert _ids(graph.lane_children_of("br", 1, LaneKind.branch)) == ["b1", "b1b"]
    assert _ids(graph.lane_children_of("br", 0, "branch")) == ["b0"]
    assert graph.lane_children_of("br", 0, LaneKind.parallel) == []


def test_predecessors_follow_run_order() -> None:
    graph = _sample_graph()

    assert _ids(graph.predecessors_of("a")) == []
    assert _ids(graph.predecessors_of("z")) == ["a", "br", "lp"]
    # The enclosing loop is a source (its per-iteration frame)
    assert _ids(graph.predecessors_of("l1")) == ["a", "br", "lp", "l0"]
    # A branch owner is not, and neither is the other lane
    assert _ids(graph.predecessors_of("b1b")) == ["a", "b1"]


def test_run_order_is_depth_first() -> None:
    graph = _sample_graph()
    assert _ids(graph.run_order()) == ["a", "br", "b0", "b1", "b1b", "lp", "l0", "l1", "z"]


def test_ancestors_and_descendants() -> None:
    graph = StepGraph(
        [
            loop("outer", "false", 0),
            parallel("par", 2, 0, parent_id="outer"),
            tool("deep", 0, parent_id="par", parallel_lane_index=1),
        ]
    )
    assert _ids(graph.ancestors_of("deep")) == ["par", "outer"]
    assert sorted(_ids(graph.descendants_of("outer"))) == ["deep", "par"]
    assert graph.parent_of("deep").id == "par"
    assert graph.parent_of("outer") is None


def test_valid_graph_has_no_errors() -> None:
    graph = _sample_graph()
    assert graph.validate() == []
    graph.assert_valid()


@pytest.mark.parametrize(
    "steps, fragment",
    [
        ([tool("orphan", 0, parent_id="ghost")], "missing parent 'ghost'"),
        (
            [branch("br", ["x"], 0), tool("t", 0, parent_id="br", branch_condition_index=5)],
            "out of range",
        ),
        (
            [loop("lp", "false", 0), tool("t", 0, parent_id="lp", branch_condition_index=0)],
            "must not carry a lane index",
        ),
        (
            [parallel("par", 2, 0), tool("t", 0, parent_id="par", branch_condition_index=0)],
            "uses a branch lane index",
        ),
        ([branch("br", ["x"], 0), tool("t", 0, parent_id="br")], "missing its branch lane index"),
        ([tool("a", 0), tool("t", 1, parent_id="a")], "not a container"),
        ([tool("a", 0), tool("b", 0)], "Duplicate listIndex 0 in top-level rail"),
    ],
)
def test_validate_reports_structural_errors(steps, fragment: str) -> None:
    errors = StepGraph(steps).validate()
    assert any(fragment in error for error in errors), errors


def test_parent_cycles_are_detected() -> None:
    graph = StepGraph(
        [
            loop("c1", "false", 0, parent_id="c2"),
            loop("c2", "false", 0, parent_id="c1"),
        ]
    )
    errors = graph.validate()
    assert any("Parent cycle detected" in error for error in errors)
    with pytest.raises(DefinitionError) as excinfo:
        graph.assert_valid()
    assert excinfo.value.errors == errors


def test_duplicate_ids_are_rejected() -> None:
    with pytest.raises(DefinitionError):
        StepGraph([tool("a", 0), tool("a", 1)])


def _assert_dense(graph: StepGraph) -> None:
    keys = {ScopeKey.of(step) for step in graph}
    for key in keys:
        indices = [step.list_index for step in graph.scope(key)]
        assert indices == list(range(len(indices))), (key, indices)


def test_insert_renumbers_scope() -> None:
    graph = _sample_graph()

    graph.insert(tool("n", 99), index=1)
    graph.insert(tool("first", 0), parent_id="lp", index=0)
    graph.insert(tool("lane", 0), parent_id="br", lane_index=0)

    assert _ids(graph.top_level_steps()) == ["a", "n", "br", "lp", "z"]
    assert _ids(graph.children_of("lp")) == ["first", "l0", "l1"]
    assert _ids(graph.lane_children_of("br", 0, LaneKind.branch)) == ["b0", "lane"]
    assert graph.get("lane").branch_condition_index == 0
    _assert_dense(graph)


def test_move_reparents_and_renumbers_both_scopes() -> None:
    graph = _sample_graph()

    moved = graph.move("l0", index=0)

    assert moved.parent_id is None
    assert _ids(graph.top_level_steps()) == ["l0", "a", "br", "lp", "z"]
    assert _ids(graph.children_of("lp")) == ["l1"]

    graph.move("b0", parent_id="br", lane_index=1, index=1)
    assert _ids(graph.lane_children_of("br", 1, LaneKind.branch)) == ["b1", "b0", "b1b"]
    assert graph.lane_children_of("br", 0, LaneKind.branch) == []
    _assert_dense(graph)


def test_reorder_within_scope() -> None:
    graph = _sample_graph()
    graph.reorder("z", 0)
    assert _ids(graph.top_level_steps()) == ["z", "a", "br", "lp"]
    graph.reorder("z", 10)
    assert _ids(graph.top_level_steps()) == ["a", "br", "lp", "z"]
    _assert_dense(graph)


def test_remove_leaf_renumbers() -> None:
    graph = _sample_graph()
    graph.remove("a")
    assert _ids(graph.top_level_steps()) == ["br", "lp", "z"]
    _assert_dense(graph)


def test_mutation_compacts_untouched_scopes() -> None:
    graph = StepGraph([tool("a", 0), loop("lp", "true", 1), tool("l0", 2, parent_id="lp"), tool("l1", 5, parent_id="lp")])

    graph.insert(tool("n", 0), index=0)

    assert [step.list_index for step in graph.children_of("lp")] == [0, 1]
    assert _ids(graph.top_level_steps()) == ["n", "a", "lp"]
    _assert_dense(graph)


def test_remove_container_with_children_is_rejected() -> None:
    graph = _sample_graph()
    with pytest.raises(DefinitionError, match="still contains steps"):
        graph.remove("lp")
    assert "lp" in graph


def test_invalid_moves_are_rejected() -> None:
    graph = _sample_graph()
    with pytest.raises(DefinitionError):
        graph.move("lp", parent_id="lp")
    with pytest.raises(DefinitionError):
        graph.move("a", parent_id="br", lane_index=7)
    with pytest.raises(DefinitionError):
        graph.move("a", parent_id="lp", lane_index=0)
    with pytest.raises(DefinitionError):
        graph.move("a", parent_id="z")
