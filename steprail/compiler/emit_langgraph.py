"""
Emit a LangGraph StateGraph for the top-level rail.

Each rail step becomes one node wired linearly from START to END. Nested
scopes (lanes, container bodies) are interpreted inline by the node of their
enclosing rail step.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Sequence, TypedDict

from langgraph.graph import END, START, StateGraph

from steprail.schema.models import StepBase

StepRunner = Callable[[StepBase], Awaitable[object]]


class RailState(TypedDict, total=False):
    last_step_id: str


def node_name(index: int) -> str:
    return f"step_{index}"


def emit_langgraph(steps: Sequence[StepBase], run_step: StepRunner):
    graph = StateGraph(RailState)

    if not steps:
        graph.add_node("noop", _noop)
        graph.add_edge(START, "noop")
        graph.add_edge("noop", END)
        return graph.compile()

    names = [node_name(index) for index in range(len(steps))]
    for name, step in zip(names, steps):
        graph.add_node(name, _build_runner(step, run_step))

    graph.add_edge(START, names[0])
    for prev, curr in zip(names, names[1:]):
        graph.add_edge(prev, curr)
    graph.add_edge(names[-1], END)
    return graph.compile()


def recursion_limit(step_count: int, headroom: int) -> int:
    return max(25, step_count + headroom)


def _build_runner(step: StepBase, run_step: StepRunner):
    async def runner(state: RailState) -> RailState:
        await run_step(step)
        return {"last_step_id": step.id}

    runner.__name__ = f"run_{step.id}"
    return runner


async def _noop(state: RailState) -> RailState:
    return {"last_step_id": ""}
