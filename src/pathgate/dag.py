# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import ConfigError
from .model import Job


def build_dag(jobs: List[Job]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build the job graph as (adj, indeg).

    adj maps a job to the jobs that need it; indeg counts each job's
    distinct needs. Duplicate names and needs on unknown jobs are
    configuration errors.
    """
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ConfigError(f"Duplicate job names found: {dupes}")

    known = set(names)
    adj: Dict[str, Set[str]] = {n: set() for n in names}
    indeg: Dict[str, int] = {n: 0 for n in names}

    for job in jobs:
        for need in dict.fromkeys(job.needs):
            if need not in known:
                raise ConfigError(
                    f"Job '{job.name}' needs missing job '{need}'. "
                    f"Known jobs: {sorted(known)}"
                )
            adj[need].add(job.name)
            indeg[job.name] += 1

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Kahn's algorithm, one level at a time.

    Jobs in the same level do not depend on each other; names are sorted
    within a level so the order is stable across runs.
    """
    remaining = dict(indeg)
    q = deque(sorted(n for n, d in remaining.items() if d == 0))
    levels: List[List[str]] = []
    seen = 0

    while q:
        level = [q.popleft() for _ in range(len(q))]
        seen += len(level)
        for node in level:
            for child in sorted(adj[node]):
                remaining[child] -= 1
                if remaining[child] == 0:
                    q.append(child)
        levels.append(level)

    if seen != len(remaining):
        stuck = sorted(n for n, d in remaining.items() if d > 0)
        cycle = find_cycle(adj, stuck)
        detail = " -> ".join(cycle) if cycle else ", ".join(stuck)
        raise ConfigError(f"Job graph has a cycle: {detail}")

    return levels


def find_cycle(adj: Dict[str, Set[str]], start: Iterable[str]) -> Optional[List[str]]:
    """First cycle reachable from `start`, as a closed path (a -> b -> a)."""
    done: Set[str] = set()

    for root in start:
        if root in done:
            continue
        path: List[str] = []
        on_path: Set[str] = set()
        stack = [(root, iter(sorted(adj[root])))]
        path.append(root)
        on_path.add(root)
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                path.pop()
                on_path.discard(node)
                done.add(node)
            elif child in on_path:
                return path[path.index(child):] + [child]
            elif child not in done:
                stack.append((child, iter(sorted(adj[child]))))
                path.append(child)
                on_path.add(child)
    return None


def ancestors(jobs: Iterable[Job], names: Iterable[str]) -> Set[str]:
    """Every job that `names` transitively need (the names themselves excluded)."""
    needs = {j.name: list(j.needs) for j in jobs}
    seen: Set[str] = set()
    stack = [n for name in names for n in needs.get(name, [])]
    while stack:
        node = stack.pop()
        if node in seen:
            continue
        seen.add(node)
        stack.extend(needs.get(node, []))
    return seen
