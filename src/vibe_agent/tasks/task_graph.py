# src/vibe_agent/tasks/task_graph.py

from __future__ import annotations

"""
Pure helpers over a board's task list: graph building, cycle and integrity checks,
eligibility. No I/O here; the executor calls these once per pass.
"""

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from .task_models import Task, TaskStatus


@dataclass(slots=True, frozen=True)
class IntegrityIssue:
    task_id: str
    reason: str


def build_graph(tasks: Iterable[Task]) -> dict[str, list[str]]:
    """task id -> dependency ids that exist on the board (unknown ids are dropped here)."""
    tasks = list(tasks)
    known = {t.id for t in tasks}
    return {t.id: [d for d in t.dependencies if d in known] for t in tasks}


def find_cycles(graph: dict[str, list[str]]) -> list[list[str]]:
    """
    Strongly connected components that form a cycle (size > 1, or a self loop).

    Iterative Tarjan so deep chains do not hit the recursion limit.
    Components are returned in graph order with members in graph order.
    """
    order = {node: i for i, node in enumerate(graph)}
    index: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    components: list[list[str]] = []
    counter = 0

    for root in graph:
        if root in index:
            continue
        work: list[tuple[str, int]] = [(root, 0)]
        while work:
            node, child_i = work[-1]
            if child_i == 0:
                index[node] = lowlink[node] = counter
                counter += 1
                stack.append(node)
                on_stack.add(node)

            children = graph.get(node, [])
            if child_i < len(children):
                work[-1] = (node, child_i + 1)
                child = children[child_i]
                if child not in graph:
                    continue
                if child not in index:
                    work.append((child, 0))
                elif child in on_stack:
                    lowlink[node] = min(lowlink[node], index[child])
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

            if lowlink[node] == index[node]:
                comp: list[str] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    comp.append(member)
                    if member == node:
                        break
                if len(comp) > 1 or node in graph.get(node, []):
                    components.append(sorted(comp, key=order.__getitem__))

    components.sort(key=lambda c: order[c[0]])
    return components


def find_integrity_issues(board_id: str, tasks: Sequence[Task]) -> list[IntegrityIssue]:
    """
    Problems that must fail a pending task before it can run:
    - a dependency id that is not on this board
    - a dependency on itself
    - a task whose own board_id disagrees with the board it lives on
    """
    known = {t.id for t in tasks}
    out: list[IntegrityIssue] = []
    for t in tasks:
        if t.status != TaskStatus.PENDING:
            continue
        if t.board_id != board_id:
            out.append(IntegrityIssue(t.id, f"Task board id {t.board_id} does not match board {board_id}"))
            continue
        if t.id in t.dependencies:
            out.append(IntegrityIssue(t.id, "Task depends on itself"))
            continue
        missing = [d for d in t.dependencies if d not in known]
        if missing:
            out.append(IntegrityIssue(t.id, f"Unknown dependency: {', '.join(missing)}"))
    return out


def eligible_tasks(tasks: Sequence[Task]) -> list[Task]:
    """
    Pending tasks whose dependencies are all completed.

    Sorted by priority (critical first), ties kept in board insertion order.
    """
    by_id = {t.id: t for t in tasks}
    out: list[tuple[int, int, Task]] = []
    for pos, t in enumerate(tasks):
        if t.status != TaskStatus.PENDING:
            continue
        ok = True
        for dep_id in t.dependencies:
            dep = by_id.get(dep_id)
            if dep is None or dep.status != TaskStatus.COMPLETED:
                ok = False
                break
        if ok:
            out.append((t.priority.rank, pos, t))
    out.sort(key=lambda x: (x[0], x[1]))
    return [t for _, _, t in out]


def blocked_by_failure(tasks: Sequence[Task]) -> dict[str, str]:
    """
    pending task id -> id of a failed task somewhere in its dependency chain.

    The reported id is the failed task itself, not the intermediate pending dependency.
    """
    by_id = {t.id: t for t in tasks}
    memo: dict[str, str | None] = {}

    def failed_root(start: str) -> str | None:
        # Depth-first over pending dependencies with an explicit stack (chains can be long).
        stack: list[tuple[str, Iterator[str]]] = [(start, iter(by_id[start].dependencies))]
        on_path = {start}
        while stack:
            task_id, deps = stack[-1]
            found: str | None = None
            child: Task | None = None
            for dep_id in deps:
                dep = by_id.get(dep_id)
                if dep is None or dep_id in on_path:
                    continue
                if dep.status == TaskStatus.FAILED:
                    found = dep.id
                    break
                if dep.status != TaskStatus.PENDING:
                    continue
                if dep_id in memo:
                    found = memo[dep_id]
                    if found is not None:
                        break
                    continue
                child = dep
                break

            if found is not None:
                # Everything on the path is blocked by the same failure.
                for tid, _ in stack:
                    memo[tid] = found
                return found
            if child is not None:
                stack.append((child.id, iter(child.dependencies)))
                on_path.add(child.id)
                continue
            memo[task_id] = None
            stack.pop()
            on_path.discard(task_id)
        return None

    out: dict[str, str] = {}
    for t in tasks:
        if t.status != TaskStatus.PENDING:
            continue
        root = memo[t.id] if t.id in memo else failed_root(t.id)
        if root is not None:
            out[t.id] = root
    return out
