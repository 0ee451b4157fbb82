"""Topological ordering of stacks by their declared dependencies."""

import heapq
from collections.abc import Iterable, Mapping

from stackpilot.errors import CircularDependencyError


def dependency_order(dependencies: Mapping[str, Iterable[str]]) -> list[str]:
    """Return stack names ordered so every dependency precedes its dependents.

    ``dependencies`` maps each stack to the stacks it depends on. Names that
    are not keys of the mapping are ignored. Stacks that become ready at the
    same time are emitted in lexical order, so the result is deterministic.
    """
    in_degree: dict[str, int] = {name: 0 for name in dependencies}
    dependents: dict[str, list[str]] = {name: [] for name in dependencies}

    for name, deps in dependencies.items():
        for dep in set(deps):
            if dep not in in_degree:
                continue
            dependents[dep].append(name)
            in_degree[name] += 1

    ready = [name for name, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    order = []
    while ready:
        current = heapq.heappop(ready)
        order.append(current)
        for dependent in dependents[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) != len(in_degree):
        raise CircularDependencyError(sorted(n for n, d in in_degree.items() if d > 0))

    return order
