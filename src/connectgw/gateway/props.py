"""Dependency graph over a component's configurable props.

Props declare ``depends_on``: the props whose values must be chosen
before this prop's options can be resolved. The graph is checked with
Kahn's algorithm when a component is parsed, and the same algorithm
yields the resolution stages callers can drive a full configuration with.
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Sequence, Set

if TYPE_CHECKING:
    from connectgw.gateway.models import Component, PropDefinition


def _stages(props: Sequence["PropDefinition"]) -> List[List[str]]:
    """Kahn's algorithm. Raises ValueError on duplicates, dangling refs or cycles."""
    if not props:
        return []

    names = [p.name for p in props]
    seen: Set[str] = set()
    for name in names:
        if name in seen:
            raise ValueError(f"Duplicate prop name: {name!r}")
        seen.add(name)

    graph: Dict[str, List[str]] = defaultdict(list)
    in_degree: Dict[str, int] = {}

    for prop in props:
        unknown = sorted(d for d in prop.depends_on if d not in seen)
        if unknown:
            raise ValueError(f"Prop {prop.name!r} depends on unknown props: {unknown}")
        in_degree[prop.name] = len(prop.depends_on)
        for dep in prop.depends_on:
            graph[dep].append(prop.name)

    # Seed in declaration order so stages keep the component's field order
    queue: deque[str] = deque(n for n in names if in_degree[n] == 0)
    stages: List[List[str]] = []

    while queue:
        current_stage: List[str] = []
        for _ in range(len(queue)):
            name = queue.popleft()
            current_stage.append(name)
            for dependent in graph[name]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)
        stages.append(current_stage)

    remaining = sorted(k for k, v in in_degree.items() if v > 0)
    if remaining:
        raise ValueError(f"Circular prop dependency among: {remaining}")

    return stages


def check_prop_graph(props: Sequence["PropDefinition"]) -> None:
    """Validate a prop list: unique names, known dependencies, no cycles."""
    _stages(props)


def resolution_order(component: "Component") -> List[List[str]]:
    """Stages of prop names; every dependency of a stage-N prop is in a stage < N."""
    return _stages(component.props)


def dependency_closure(component: "Component", prop_name: str) -> List[str]:
    """Every prop ``prop_name`` depends on, directly or transitively.

    Returned in topological order (dependencies before dependents).
    """
    by_name = {p.name: p for p in component.props}
    needed: Set[str] = set()
    stack = list(by_name[prop_name].depends_on)
    while stack:
        name = stack.pop()
        if name in needed:
            continue
        needed.add(name)
        stack.extend(by_name[name].depends_on)

    return [name for stage in _stages(component.props) for name in stage if name in needed]


def unmet_dependencies(
    component: "Component",
    prop_name: str,
    configured_props: Mapping[str, Any],
) -> List[str]:
    """Dependencies of ``prop_name`` that have no value yet (missing or None)."""
    return [
        name
        for name in dependency_closure(component, prop_name)
        if configured_props.get(name) is None
    ]


def independent_props(props: Iterable["PropDefinition"]) -> List[str]:
    """Props with no dependencies; they resolve in any order."""
    return [p.name for p in props if not p.depends_on]
